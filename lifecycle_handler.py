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

from pairing_coordinator import PairingCoordinator
from server_data import Connection, ServerData


class LifecycleHandler:

    def __init__(self, data: ServerData, coordinator: PairingCoordinator):
        self._data = data
        self._coordinator = coordinator

    def _broadcast_user_count(self) -> None:
        self._data.registry.broadcast("user-count", {"count": self._data.registry.live_count})

    def _teardown_pairing(self, cid: str) -> Optional[str]:
        partner = self._data.pairs.partner_of(cid)
        if partner is None:
            return None
        self._data.registry.notify(partner, "partner-disconnected")
        self._data.pairs.unpair(cid)
        logging.debug(f"Unpaired {cid=} from {partner=}")
        return partner

    def on_connect(self, cid: str, ip_address: str = "unknown") -> Connection:
        with self._data.lock:
            connection = self._data.registry.register(cid, ip_address)
            logging.info(f"Connection {cid=} from {ip_address} connected")
            self._broadcast_user_count()
            return connection

    def on_disconnect(self, cid: str) -> Optional[str]:
        """
        Returns the id of the partner left behind, if any.
        """
        with self._data.lock:
            if self._data.waiting.clear_if_equals(cid):
                logging.debug(f"Connection {cid=} left the waiting slot")
            partner = self._teardown_pairing(cid)
            connection = self._data.registry.unregister(cid)
            if connection is None:
                logging.debug(f"Disconnect for unknown connection {cid=}")
                return partner
            logging.info(f"Connection {cid=} ({connection.username!r}) disconnected")
            self._broadcast_user_count()
            return partner

    def on_disconnect_partner(self, cid: str) -> Optional[str]:
        with self._data.lock:
            partner = self._teardown_pairing(cid)
            if partner is not None:
                logging.info(f"{self._data.registry.lookup(cid)!r} disconnected from partner")
            return partner

    def on_find_new_partner(self, cid: str) -> Optional[str]:
        """
        Drops the current pairing (or waiting position) and runs matching again with the existing name.
        Returns the new partner's id, or None if the connection is now waiting.
        """
        with self._data.lock:
            connection = self._data.registry.get(cid)
            if connection is None:
                return None
            if not connection.identified:
                self._data.registry.notify(cid, "error", {"reason": "not_identified"})
                return None
            self._teardown_pairing(cid)
            self._data.waiting.clear_if_equals(cid)
            logging.info(f"{connection.username!r} is finding a new partner")
            return self._coordinator.match_or_wait(cid)
