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
import logging
from typing import Optional

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve

from packets import MalformedPacket, encode, parse_packet
from relay_manager import RelayManager
from server_data import Connection, ServerData


class WebsocketServer:

    def __init__(self, config, data: ServerData, manager: RelayManager):
        self._config = config
        self._data = data
        self._manager = manager
        self._trusted_proxies = set(self._config["server"]["trusted_proxies"])
        self._websocket_server: Optional[serve] = None
        self._cleanup_task: Optional[asyncio.Task] = None
        self.server: Optional[Server] = None

    @property
    def port(self) -> Optional[int]:
        if self.server is None:
            return None
        return self.server.sockets[0].getsockname()[1]

    def client_ip(self, websocket: ServerConnection) -> str:
        direct_ip = websocket.remote_address[0] if websocket.remote_address else "unknown"
        if direct_ip in self._trusted_proxies and websocket.request is not None:
            forwarded = websocket.request.headers.get("X-Forwarded-For", "")
            if forwarded:
                return forwarded.split(",")[0].strip()
        return direct_ip

    async def handler(self, websocket: ServerConnection):
        ip_address = self.client_ip(websocket)
        if not self._manager.connection_allowed(ip_address):
            await websocket.close(code=1008, reason="Too many connections")
            return

        cid = str(websocket.id)
        connection = self._manager.connected(cid, ip_address)
        writer_task = asyncio.create_task(self._writer(websocket, connection))
        shutdown_wait_task = asyncio.create_task(self._data.shutdown_event.wait())
        try:
            while True:
                recv_task = asyncio.create_task(websocket.recv())
                await asyncio.wait([recv_task, shutdown_wait_task], return_when=asyncio.FIRST_COMPLETED)

                # shutdown case
                if self._data.shutdown_event.is_set():
                    if recv_task.done():
                        self._handle_last_frame(cid, recv_task)
                    else:
                        recv_task.cancel()
                    await websocket.close(code=1001, reason="Server shutting down")
                    break

                message = await recv_task
                if isinstance(message, str):
                    self._parse_message(cid, message)
                else:
                    logging.warning(f"Ignoring binary frame from {cid=}")
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Websocket connection {cid=} closed")
        finally:
            shutdown_wait_task.cancel()
            self._manager.disconnected(cid)
            writer_task.cancel()
            await asyncio.gather(writer_task, return_exceptions=True)

    async def _writer(self, websocket: ServerConnection, connection: Connection):
        try:
            while True:
                packet = await connection.outbox.get()
                await websocket.send(encode(packet))
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Stopped writing to closed connection {connection.cid=}")

    def _handle_last_frame(self, cid: str, recv_task: asyncio.Future):
        try:
            message = recv_task.result()
        except websockets.exceptions.ConnectionClosed:
            return
        if isinstance(message, str):
            logging.debug(f"Handling frame from {cid=} that arrived with shutdown")
            self._parse_message(cid, message)

    def _parse_message(self, cid: str, message: str):
        try:
            event, data = parse_packet(message)
        except MalformedPacket as e:
            self._manager.malformed(cid, e)
            return
        logging.debug(f"Received {event} from {cid=}: {data}")
        self._manager.handle_packet(cid, event, data)

    async def _cleanup(self):
        interval = self._config["limits"]["cleanup_interval"]
        while True:
            await asyncio.sleep(interval)
            self._manager.cleanup()

    async def __aenter__(self):
        logging.debug(f"Starting websocket server")
        self._websocket_server = serve(self.handler, self._config["server"]["host"],
                                       int(self._config["server"]["port"]))
        self.server = await self._websocket_server.__aenter__()
        self._cleanup_task = asyncio.create_task(self._cleanup())
        logging.info(f"Listening on ws://{self._config['server']['host']}:{self.port}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        logging.debug(f"Stopping websocket server")
        self._data.shutdown_event.set()
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            await asyncio.gather(self._cleanup_task, return_exceptions=True)
        if self._websocket_server is not None:
            return await self._websocket_server.__aexit__(exc_type, exc_val, exc_tb)
