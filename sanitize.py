"""
MorseRelay
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import re

USERNAME_MAX_LENGTH = 20
MORSE_MAX_LENGTH = 10_000
TEXT_MAX_LENGTH = 1_000

WPM_MIN = 5
WPM_MAX = 50
WPM_DEFAULT = 12

_TAG = re.compile(r"<[^>]*>")
_SCRIPT = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"""on\w+\s*=\s*["'][^"']*["']""", re.IGNORECASE)
_JAVASCRIPT_URL = re.compile(r"javascript:", re.IGNORECASE)
_DATA_HTML_URL = re.compile(r"data:text/html", re.IGNORECASE)
_CONTROL = re.compile(r"[\x00-\x1F\x7F]")
_CONTROL_KEEP_WHITESPACE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_DASH_VARIANTS = re.compile("[\u2010-\u2015]")
_NOT_MORSE = re.compile(r"[^·.\-\s|]")


def _strip_markup(value: str) -> str:
    value = _TAG.sub("", value)
    value = _SCRIPT.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    value = _JAVASCRIPT_URL.sub("", value)
    return _DATA_HTML_URL.sub("", value)


def sanitize_username(username) -> str:
    if not username or not isinstance(username, str):
        return ""
    sanitized = _CONTROL.sub("", _strip_markup(username)).strip()
    return sanitized[:USERNAME_MAX_LENGTH]


def sanitize_morse_code(morse) -> str:
    """
    Keeps dots (middle dot or period), dashes, whitespace and the "|" word separator.
    Typographic dashes are folded into "-".
    """
    if not morse or not isinstance(morse, str):
        return ""
    sanitized = _TAG.sub("", morse)
    sanitized = _DASH_VARIANTS.sub("-", sanitized)
    sanitized = _NOT_MORSE.sub("", sanitized)
    return sanitized[:MORSE_MAX_LENGTH]


def sanitize_text(text) -> str:
    if not text or not isinstance(text, str):
        return ""
    sanitized = _CONTROL_KEEP_WHITESPACE.sub("", _strip_markup(text))
    return sanitized[:TEXT_MAX_LENGTH]


def sanitize_number(value, minimum: int, maximum: int, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if parsed < minimum or parsed > maximum:
        return default
    return parsed


def sanitize_wpm(wpm) -> int:
    return sanitize_number(wpm, WPM_MIN, WPM_MAX, WPM_DEFAULT)
