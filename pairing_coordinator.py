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


class PairingCoordinator:
    """
    Admits identified connections into the waiting slot, or matches them against its occupant.

    Every transition runs under ServerData.lock and contains no await, so the check of the waiting
    slot and the writes to the slot and pair table form one step.
    """

    def __init__(self, data: ServerData):
        self._data = data

    def identify(self, cid: str, username: str) -> Optional[str]:
        with self._data.lock:
            if cid not in self._data.registry:
                logging.warning(f"Identify from unknown connection {cid=}")
                return None
            self._data.registry.identify(cid, username)
            logging.debug(f"Connection {cid=} identified as {username!r}")

            partner = self._data.pairs.partner_of(cid)
            if partner is not None:
                # already paired, only the name changes
                logging.debug(f"Connection {cid=} re-identified while paired with {partner=}")
                return partner

            return self.match_or_wait(cid)

    def match_or_wait(self, cid: str) -> Optional[str]:
        """
        Returns the new partner's id on a match, None if cid was put into the waiting slot instead.
        """
        with self._data.lock:
            registry = self._data.registry
            waiting = self._data.waiting
            pairs = self._data.pairs

            connection = registry.get(cid)
            if connection is None or not connection.identified:
                logging.debug(f"Connection {cid=} cannot be matched before it identifies")
                return None

            occupant = waiting.occupant
            if occupant is not None and occupant != cid:
                if registry.is_live(occupant) and occupant not in pairs:
                    waiting.consume_if_present()
                    pairs.pair(cid, occupant)
                    registry.notify(cid, "paired", {"partnerUsername": registry.lookup(occupant)})
                    registry.notify(occupant, "paired", {"partnerUsername": connection.username})
                    logging.info(f"Paired {connection.username!r} <-> {registry.lookup(occupant)!r}")
                    return occupant
                logging.debug(f"Waiting slot held stale connection {occupant=}, replacing it")
                waiting.clear_if_equals(occupant)

            waiting.offer(cid)
            registry.notify(cid, "waiting")
            logging.info(f"{connection.username!r} is waiting for a partner")
            return None
