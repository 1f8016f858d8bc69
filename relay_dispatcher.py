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

import logging
from typing import Optional

from server_data import ServerData


class RelayDispatcher:
    """
    Forwards live signals and completed messages to the sender's partner.
    Only reads the pair table; unpaired senders are dropped silently.
    """

    def __init__(self, data: ServerData):
        self._data = data

    def _forward(self, cid: str, event: str, data: Optional[dict] = None) -> Optional[str]:
        with self._data.lock:
            partner = self._data.pairs.partner_of(cid)
            if partner is None:
                logging.debug(f"Dropping {event} from unpaired connection {cid=}")
                return None
            if not self._data.registry.notify(partner, event, data):
                return None
            return partner

    def relay_signal(self, cid: str, signal: str, timestamp: int) -> Optional[str]:
        return self._forward(cid, "signal", {
            "signal": signal,
            "from": self._data.registry.lookup(cid),
            "timestamp": timestamp,
        })

    def relay_message(self, cid: str, message: str, wpm: int, timestamp: int) -> Optional[str]:
        partner = self._forward(cid, "message-complete", {
            "message": message,
            "from": self._data.registry.lookup(cid),
            "wpm": wpm,
            "timestamp": timestamp,
        })
        if partner is not None:
            logging.info(f"Message from {self._data.registry.lookup(cid)!r}: {message} ({wpm} WPM)")
        return partner

    def relay_typing(self, cid: str, typing: bool) -> Optional[str]:
        return self._forward(cid, "typing" if typing else "typing-stop")
