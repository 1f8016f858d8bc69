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

import asyncio
import dataclasses
import logging
import threading
from typing import Iterator, Optional

from packets import outbound


@dataclasses.dataclass
class Connection:
    cid: str  # opaque, assigned by the transport
    ip_address: str = "unknown"
    username: Optional[str] = None
    alive: bool = True
    outbox: asyncio.Queue = dataclasses.field(default_factory=asyncio.Queue)

    @property
    def identified(self) -> bool:
        return bool(self.username)

    def push(self, packet: dict) -> None:
        if not self.alive:
            logging.debug(f"Dropping {packet['event']} for closed connection {self.cid=}")
            return
        self.outbox.put_nowait(packet)


class ConnectionRegistry:
    """
    Owns every live Connection. Everything else refers to connections by id only.
    """

    def __init__(self):
        self._connections: dict[str, Connection] = dict()
        self.peak_live_count = 0

    def register(self, cid: str, ip_address: str = "unknown") -> Connection:
        connection = self._connections.get(cid)
        if connection is None:
            connection = Connection(cid, ip_address)
            self._connections[cid] = connection
            self.peak_live_count = max(self.peak_live_count, len(self._connections))
        return connection

    def identify(self, cid: str, username: str) -> None:
        connection = self._connections.get(cid)
        if connection is None:
            logging.warning(f"Tried to identify unknown connection {cid=}")
            return
        connection.username = username

    def unregister(self, cid: str) -> Optional[Connection]:
        connection = self._connections.pop(cid, None)
        if connection is not None:
            connection.alive = False
        return connection

    def get(self, cid: str) -> Optional[Connection]:
        return self._connections.get(cid)

    def lookup(self, cid: str) -> Optional[str]:
        connection = self._connections.get(cid)
        if connection is None:
            return None
        return connection.username

    def is_live(self, cid: str) -> bool:
        connection = self._connections.get(cid)
        return connection is not None and connection.alive

    def notify(self, cid: str, event: str, data: Optional[dict] = None) -> bool:
        connection = self._connections.get(cid)
        if connection is None:
            logging.debug(f"Wanted to send {event} to unknown connection {cid=}")
            return False
        connection.push(outbound(event, data))
        return True

    def broadcast(self, event: str, data: Optional[dict] = None) -> None:
        for connection in self._connections.values():
            connection.push(outbound(event, data))

    @property
    def live_count(self) -> int:
        return len(self._connections)

    def __contains__(self, cid: str) -> bool:
        return cid in self._connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))


class WaitingSlot:
    """
    Single-capacity rendezvous point.
    """

    def __init__(self):
        self._cid: Optional[str] = None

    @property
    def occupant(self) -> Optional[str]:
        return self._cid

    def offer(self, cid: str) -> bool:
        """
        Returns True if cid is now waiting, False if a different connection already holds the slot.
        The slot is left untouched in the second case; the caller consumes it as part of the match.
        """
        if self._cid is None or self._cid == cid:
            self._cid = cid
            return True
        return False

    def consume_if_present(self) -> Optional[str]:
        cid, self._cid = self._cid, None
        return cid

    def clear_if_equals(self, cid: str) -> bool:
        if self._cid is not None and self._cid == cid:
            self._cid = None
            return True
        return False


class PairTableError(Exception): pass


class PairTable:
    """
    Symmetric pairing map. Both directions are written and erased together.
    """

    def __init__(self):
        self._partners: dict[str, str] = dict()

    def pair(self, a: str, b: str) -> None:
        if a == b:
            raise PairTableError(f"Cannot pair {a=} with itself")
        if a in self._partners or b in self._partners:
            raise PairTableError(f"Cannot pair {a=} with {b=}, one side is already paired")
        self._partners[a] = b
        self._partners[b] = a

    def unpair(self, cid: str) -> Optional[str]:
        """
        Removes both halves of the pairing cid belongs to and returns the former partner.
        """
        partner = self._partners.pop(cid, None)
        if partner is not None:
            self._partners.pop(partner, None)
        return partner

    def partner_of(self, cid: str) -> Optional[str]:
        return self._partners.get(cid)

    def pairs(self) -> list[tuple[str, str]]:
        return [(a, b) for a, b in self._partners.items() if a < b]

    def __contains__(self, cid: str) -> bool:
        return cid in self._partners

    def __len__(self) -> int:
        return len(self._partners) // 2


class ServerData:

    def __init__(self):
        self.registry = ConnectionRegistry()
        self.waiting = WaitingSlot()
        self.pairs = PairTable()

        # guards waiting + pairs (and the registry) as one unit; transitions never await while holding it
        self.lock = threading.RLock()
        self.shutdown_event = asyncio.Event()
