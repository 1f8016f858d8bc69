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

from event_log import EventLog
from lifecycle_handler import LifecycleHandler
from packets import MalformedPacket, MESSAGE_EVENTS
from pairing_coordinator import PairingCoordinator
from rate_limit import ConnectionLimiter, MessageRateLimiter
from relay_dispatcher import RelayDispatcher
from server_data import Connection, ServerData

"""
Everything the transport hands us goes through here: limits are checked, then the
pairing coordinator, relay dispatcher or lifecycle handler takes over.
"""


class RelayManager:

    def __init__(self, config, data: ServerData, event_log: EventLog):
        self._config = config
        self._data = data
        self._event_log = event_log

        self.coordinator = PairingCoordinator(self._data)
        self.dispatcher = RelayDispatcher(self._data)
        self.lifecycle = LifecycleHandler(self._data, self.coordinator)

        limits = self._config["limits"]
        self.connection_limiter = ConnectionLimiter(limits["max_connections_per_ip"])
        self.message_limiter = MessageRateLimiter(limits["max_messages_per_minute"])
        self.signal_limiter = MessageRateLimiter(limits["max_signals_per_minute"])

    def connection_allowed(self, ip_address: str) -> bool:
        if self.connection_limiter.can_connect(ip_address):
            return True
        self._event_log.record(
            "rate_limit_connection",
            ip=ip_address,
            limit=self.connection_limiter.max_per_ip,
        )
        return False

    def connected(self, cid: str, ip_address: str) -> Connection:
        self.connection_limiter.register(ip_address, cid)
        return self.lifecycle.on_connect(cid, ip_address)

    def disconnected(self, cid: str) -> None:
        connection = self._data.registry.get(cid)
        self.lifecycle.on_disconnect(cid)
        self.message_limiter.forget(cid)
        self.signal_limiter.forget(cid)
        if connection is None:
            return
        self.connection_limiter.release(connection.ip_address, cid)
        if connection.identified:
            self._event_log.record("session_end", connection=cid, username=connection.username)

    def malformed(self, cid: str, error: MalformedPacket) -> None:
        # junk shares the message budget; past it, drop without replying or recording
        if not self.message_limiter.check(cid).allowed:
            logging.debug(f"Dropping malformed frame from rate-limited {cid=}")
            return

        connection = self._data.registry.get(cid)
        ip_address = connection.ip_address if connection is not None else "unknown"
        logging.warning(f"Malformed {error.event or 'packet'} from {cid=}: {error.reason}")
        self._data.registry.notify(cid, "error", {"reason": error.reason})
        kind = "invalid_username" if error.reason == "invalid_username" else "malformed_request"
        self._event_log.record(kind, connection=cid, ip=ip_address, reason=error.reason)

    def _rate_limited(self, cid: str, event: str) -> bool:
        limiter = self.message_limiter if event in MESSAGE_EVENTS else self.signal_limiter
        decision = limiter.check(cid)
        if decision.allowed:
            return False

        connection = self._data.registry.get(cid)
        logging.warning(f"Rate limit exceeded for {cid=} on {event} ({limiter.max_per_window} per minute)")
        self._data.registry.notify(cid, "rate-limited", {"event": event, "resetIn": decision.reset_in})
        self._event_log.record(
            "rate_limit_message",
            connection=cid,
            ip=connection.ip_address if connection is not None else "unknown",
            event=event,
            reset_in=decision.reset_in,
        )
        return True

    def handle_packet(self, cid: str, event: str, data: dict) -> None:
        if self._rate_limited(cid, event):
            return

        if event == "identify":
            self._identify(cid, data["username"])
        elif event == "signal":
            self.dispatcher.relay_signal(cid, data["signal"], data["timestamp"])
        elif event == "message-complete":
            self._message_complete(cid, data)
        elif event == "typing":
            self.dispatcher.relay_typing(cid, True)
        elif event == "typing-stop":
            self.dispatcher.relay_typing(cid, False)
        elif event == "disconnect-partner":
            self.lifecycle.on_disconnect_partner(cid)
        elif event == "find-new-partner":
            self.lifecycle.on_find_new_partner(cid)
        else:
            logging.warning(f"No handler for {event=}")

    def _identify(self, cid: str, username: str) -> None:
        self.coordinator.identify(cid, username)
        connection = self._data.registry.get(cid)
        if connection is not None:
            self._event_log.record(
                "session_start",
                connection=cid,
                username=username,
                ip=connection.ip_address,
            )

    def _message_complete(self, cid: str, data: dict) -> None:
        partner = self.dispatcher.relay_message(cid, data["message"], data["wpm"], data["timestamp"])
        if partner is None:
            return
        sender = self._data.registry.get(cid)
        receiver = self._data.registry.get(partner)
        if sender is None or receiver is None:
            return
        self._event_log.record(
            "message",
            sender=sender.username,
            sender_ip=sender.ip_address,
            receiver=receiver.username,
            receiver_ip=receiver.ip_address,
            morse=data["message"],
            text=data["translatedText"],
            wpm=data["wpm"],
        )

    def cleanup(self) -> None:
        tracked = self.message_limiter.cleanup() + self.signal_limiter.cleanup()
        ips = self.connection_limiter.cleanup()
        logging.debug(f"Rate limit cleanup: {tracked} connections tracked, {ips} IPs tracked")
