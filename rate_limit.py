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

import collections
import dataclasses
import logging
import math
import time
from typing import Callable


@dataclasses.dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    reset_in: int = 0  # seconds until the oldest attempt leaves the window


class ConnectionLimiter:
    """
    Caps concurrent connections per client IP.
    """

    def __init__(self, max_per_ip: int):
        self.max_per_ip = max_per_ip
        self._connections: dict[str, set[str]] = dict()

    def can_connect(self, ip_address: str) -> bool:
        if ip_address == "unknown":
            return True
        active = len(self._connections.get(ip_address, ()))
        if active >= self.max_per_ip:
            logging.warning(f"Connection limit exceeded for {ip_address} ({active}/{self.max_per_ip})")
            return False
        return True

    def register(self, ip_address: str, cid: str) -> None:
        self._connections.setdefault(ip_address, set()).add(cid)

    def release(self, ip_address: str, cid: str) -> None:
        connections = self._connections.get(ip_address)
        if connections is None:
            return
        connections.discard(cid)
        if not connections:
            del self._connections[ip_address]

    def cleanup(self) -> int:
        for ip_address in [ip for ip, cids in self._connections.items() if not cids]:
            del self._connections[ip_address]
        return len(self._connections)


class MessageRateLimiter:
    """
    Sliding-window limit on events per connection.
    """

    def __init__(self, max_per_window: int, window: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.max_per_window = max_per_window
        self.window = window
        self._clock = clock
        self._attempts: dict[str, collections.deque] = dict()

    def _expire(self, attempts: collections.deque, now: float) -> None:
        while attempts and now - attempts[0] >= self.window:
            attempts.popleft()

    def check(self, cid: str) -> RateDecision:
        now = self._clock()
        attempts = self._attempts.setdefault(cid, collections.deque())
        self._expire(attempts, now)

        if len(attempts) >= self.max_per_window:
            reset_in = math.ceil(self.window - (now - attempts[0]))
            return RateDecision(False, 0, reset_in)

        attempts.append(now)
        return RateDecision(True, self.max_per_window - len(attempts))

    def forget(self, cid: str) -> None:
        self._attempts.pop(cid, None)

    def cleanup(self) -> int:
        now = self._clock()
        for cid in list(self._attempts):
            attempts = self._attempts[cid]
            self._expire(attempts, now)
            if not attempts:
                del self._attempts[cid]
        return len(self._attempts)
