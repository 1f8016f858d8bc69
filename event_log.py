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
import datetime
import json
import logging
import re
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

"""
Append-only JSON lines for sessions, relayed messages and security events.
Nothing on the relay path waits for a write: record() only enqueues.
"""

RECORD_GROUPS = {
    "session_start": "sessions",
    "session_end": "sessions",
    "message": "messages",
}
SECURITY_GROUP = "security"

_LOG_FILE = re.compile(r"^(sessions|messages|security)-(\d{4}-\d{2}-\d{2})\.jsonl$")

RETENTION_CHECK_INTERVAL = 24 * 60 * 60


class EventLog:

    def __init__(self, config: dict):
        self.enabled: bool = config["enabled"]
        self.directory = Path(config["directory"])
        self.retention_days: int = config["retention_days"]
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=config["queue_size"])
        self._tasks: list[asyncio.Task] = []

    def record(self, kind: str, **fields) -> bool:
        if not self.enabled:
            return False
        entry = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "type": kind,
            **fields,
        }
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            logging.warning(f"Event log queue full, dropping {kind} record")
            return False
        return True

    def path_for(self, entry: dict) -> Path:
        group = RECORD_GROUPS.get(entry["type"], SECURITY_GROUP)
        return self.directory / f"{group}-{entry['timestamp'][:10]}.jsonl"

    async def _writer(self):
        while True:
            entry = await self._queue.get()
            try:
                async with aiofiles.open(self.path_for(entry), "a", encoding="utf-8") as log_file:
                    await log_file.write(json.dumps(entry, ensure_ascii=False) + "\n")
            except OSError as e:
                logging.exception(e)
                logging.warning(f"Could not write {entry['type']} record to {self.directory}")
            finally:
                self._queue.task_done()

    async def flush(self):
        await self._queue.join()

    async def cleanup(self, today: Optional[datetime.date] = None) -> int:
        if today is None:
            today = datetime.datetime.now(datetime.timezone.utc).date()
        cutoff = today - datetime.timedelta(days=self.retention_days)

        removed = 0
        for name in await aiofiles.os.listdir(self.directory):
            match = _LOG_FILE.match(name)
            if match is None:
                continue
            if datetime.date.fromisoformat(match.group(2)) < cutoff:
                await aiofiles.os.remove(self.directory / name)
                removed += 1
        if removed:
            logging.info(f"Removed {removed} event log files older than {self.retention_days} days")
        return removed

    async def _retention(self):
        while True:
            try:
                await self.cleanup()
            except OSError as e:
                logging.exception(e)
            await asyncio.sleep(RETENTION_CHECK_INTERVAL)

    async def __aenter__(self):
        if not self.enabled:
            logging.debug("Event log disabled")
            return self
        await aiofiles.os.makedirs(self.directory, exist_ok=True)
        self._tasks = [
            asyncio.create_task(self._writer()),
            asyncio.create_task(self._retention()),
        ]
        logging.debug(f"Event log writing to {self.directory}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._tasks:
            try:
                await asyncio.wait_for(self.flush(), timeout=5)
            except asyncio.TimeoutError:
                logging.warning(f"Dropped {self._queue.qsize()} event log records on shutdown")
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
