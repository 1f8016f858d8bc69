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
from pathlib import Path

from voluptuous import Schema, Required, Optional, All, Range, Length
import voluptuous.error
import aiofiles
import tomlkit
import tomlkit.exceptions


class ConfigurationLoadError(Exception): pass


class Config:
    config: dict
    config_opened: bool = False

    def __init__(self, config_location: Path):
        self.config_location = config_location

        self.config_schema = Schema({
            Required('server'): {
                Required('host'): str,
                Required('port'): All(int, Range(min=0, max=65535)),
                Optional('trusted_proxies', default=list): [str],
            },
            Optional('limits', default=dict): {
                Optional('max_connections_per_ip', default=5): All(int, Range(min=1)),
                Optional('max_messages_per_minute', default=60): All(int, Range(min=1)),
                Optional('max_signals_per_minute', default=600): All(int, Range(min=1)),
                Optional('cleanup_interval', default=300): All(int, Range(min=1)),
            },
            Optional('event_log', default=dict): {
                Optional('enabled', default=True): bool,
                Optional('directory', default="./logs"): All(str, Length(min=1)),
                Optional('retention_days', default=30): All(int, Range(min=1)),
                Optional('queue_size', default=10_000): All(int, Range(min=1)),
            },
        })

    async def initialize(self):
        try:
            async with aiofiles.open(self.config_location, 'r') as config_file:
                file_data = await config_file.read()
                document = tomlkit.parse(file_data)
                logging.debug("Loaded Configuration without toml format error")
                logging.debug("Validating against Schema.")
                self.config = self.config_schema(document.unwrap())
                self.config_opened = True
                logging.debug("Validated against Schema.")
        except FileNotFoundError as e:
            logging.exception(e)
            logging.warning(
                f"Could not find {self.config_location}. Copy from .example/config.toml to {self.config_location}")
            raise ConfigurationLoadError() from e
        except IOError as e:
            logging.exception(e)
            logging.warning(f"Could not open file {self.config_location}")
            raise ConfigurationLoadError() from e
        except tomlkit.exceptions.ParseError as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} is invalid")
            raise ConfigurationLoadError() from e
        except voluptuous.error.MultipleInvalid as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} does not match expected format")
            logging.warning(f"Issue configuration item: {e.path}")
            raise ConfigurationLoadError() from e

        logging.info(f"Configuration loaded.")
