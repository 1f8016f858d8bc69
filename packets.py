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

import json

import voluptuous.error
from voluptuous import Schema, Required, Optional, All, In, Coerce, REMOVE_EXTRA, Invalid

from sanitize import sanitize_username, sanitize_morse_code, sanitize_text, sanitize_wpm, WPM_DEFAULT

"""
Wire format, both directions: one JSON object per text frame,
    {"event": "<name>", "data": {...}}
"data" is optional. Inbound data is sanitized by the schemas below before it reaches the relay.
"""

MESSAGE_EVENTS = ("identify", "message-complete", "find-new-partner", "disconnect-partner")
SIGNAL_EVENTS = ("signal", "typing", "typing-stop")
INBOUND_EVENTS = MESSAGE_EVENTS + SIGNAL_EVENTS

SIGNAL_KINDS = ("dot", "dash")


class MalformedPacket(Exception):

    def __init__(self, reason: str, event: str = None):
        super().__init__(reason)
        self.reason = reason
        self.event = event


def _username(value):
    if isinstance(value, dict):
        value = value.get("username")
    username = sanitize_username(value)
    if not username:
        raise Invalid("username is empty after sanitizing")
    return username


PACKET_SCHEMA = Schema({
    Required("event"): In(INBOUND_EVENTS),
    Optional("data"): object,
}, extra=REMOVE_EXTRA)

DATA_SCHEMAS = {
    "identify": (Schema(_username), "invalid_username"),
    "signal": (Schema({
        Required("signal"): In(SIGNAL_KINDS),
        Optional("timestamp", default=0): Coerce(int),
    }, extra=REMOVE_EXTRA), "malformed_signal"),
    "message-complete": (Schema({
        Required("message"): All(str, sanitize_morse_code),
        Optional("translatedText", default=""): sanitize_text,
        Optional("wpm", default=WPM_DEFAULT): sanitize_wpm,
        Optional("timestamp", default=0): Coerce(int),
    }, extra=REMOVE_EXTRA), "malformed_message"),
}


def parse_packet(message: str) -> tuple[str, dict]:
    """
    Decodes and validates one inbound frame. Returns (event, data) with data already sanitized.
    Raises MalformedPacket with a short machine-readable reason.
    """
    try:
        packet = json.loads(message)
    except json.JSONDecodeError as e:
        raise MalformedPacket("malformed_request") from e

    try:
        packet = PACKET_SCHEMA(packet)
    except voluptuous.error.Invalid as e:
        raise MalformedPacket("malformed_request") from e

    event = packet["event"]
    if event not in DATA_SCHEMAS:
        return event, {}

    schema, reason = DATA_SCHEMAS[event]
    try:
        data = schema(packet.get("data"))
    except voluptuous.error.Invalid as e:
        raise MalformedPacket(reason, event) from e

    if event == "identify":
        return event, {"username": data}
    return event, data


def outbound(event: str, data=None) -> dict:
    packet = {"event": event}
    if data is not None:
        packet["data"] = data
    return packet


def encode(packet: dict) -> str:
    return json.dumps(packet, ensure_ascii=False)
