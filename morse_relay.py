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
import os

from config import Config, ConfigurationLoadError
from event_log import EventLog
from logger import setup_logging
from relay_manager import RelayManager
from server_data import ServerData
from websocket_server import WebsocketServer


class MorseRelay:

    def __init__(self, config):
        self._config = config
        self._data = ServerData()
        self._event_log = EventLog(self._config["event_log"])
        self._manager = RelayManager(self._config, self._data, self._event_log)
        self._websocket_server = WebsocketServer(self._config, self._data, self._manager)

    async def begin(self):
        logging.info("Starting Morse Relay Server")
        async with self._event_log:
            logging.info("Starting Morse Relay Websocket Server")
            async with self._websocket_server:
                try:
                    logging.info("Ctrl^C to quit")
                    await self._data.shutdown_event.wait()
                except asyncio.CancelledError:
                    logging.info("Cancelled ...")
                finally:
                    logging.info("Stopping Server ...")
                    logging.info(f"Peak concurrent users: {self._data.registry.peak_live_count}")


async def main():
    logging.info("Starting morse relay ...")

    config = Config(os.environ.get("MORSE_RELAY_CONFIG", "./config.toml"))

    try:
        await config.initialize()
    except ConfigurationLoadError:
        logging.error("Could not load configuration. Exiting")
        return

    morse_relay = MorseRelay(config.config)
    await morse_relay.begin()


def run():
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Stopped.")


if __name__ == "__main__":
    run()
