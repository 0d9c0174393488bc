#!/usr/bin/env python3
# MIT License
#
# Copyright (c) 2025 User Directory Contributors
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""
Snapshot persistence for the user directory.

The whole record set is written to one JSON file on every change. While a
write is in progress the live file is renamed to a ``__`` prefixed sibling,
so readers that find the live path missing wait for it to come back instead
of reading a half-written file.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import Any, Optional, Union

from .errors import FileUnavailableError, RecordDecodeError, StoreIOError
from .models import UserRecord

logger = logging.getLogger(__name__)

TEMP_PREFIX = "__"
DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_MAX_POLL_ATTEMPTS = 20


def temp_path_for(path: Union[str, Path]) -> Path:
    """Transient name used for ``path`` while a write is in progress."""
    path = Path(path)
    return path.with_name(f"{TEMP_PREFIX}{path.name}")


class SnapshotFile:
    """
    JSON snapshot of all user records, guarded by a rename protocol.

    Write protocol:
        1. Wait for the live file to exist (bounded polling).
        2. Rename the live file to its temp name.
        3. Serialize every record and overwrite the temp file.
        4. Always rename the temp file back to the live name.

    Read protocol:
        1. Fail fast if the database was never initialized.
        2. Wait for the live file to exist (bounded polling).
        3. Read and decode the whole file; empty content means no records.

    This is advisory locking for readers only. Concurrent writers in
    separate processes still race at rename granularity and the last full
    snapshot wins.
    """

    def __init__(
        self,
        path: Union[str, Path],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        json_indent: Optional[int] = 2,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Args:
            path: Live database file path
            poll_interval: Seconds between existence checks
            max_poll_attempts: Sleeps allowed before giving up on the file
            json_indent: Indentation for the written JSON, None for compact
            sleep: Awaitable sleep primitive, defaults to asyncio.sleep
        """
        self.path = Path(path)
        self.temp_path = temp_path_for(self.path)
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.json_indent = json_indent
        self._sleep = sleep or asyncio.sleep
        self._initialized = False

    def exists(self) -> bool:
        """True if either the live file or its temp sibling is on disk."""
        return self.path.exists() or self.temp_path.exists()

    def initialize(self) -> None:
        """
        Make sure the live file exists before first use.

        A temp file without a live file is left over from a write that was
        interrupted mid-rename. It is deleted and an empty database created.
        """
        if self.temp_path.exists() and not self.path.exists():
            logger.warning(f"Deleting stray temp file {self.temp_path} left by an interrupted write")
            self.temp_path.unlink()

        if not self.path.exists():
            logger.warning(f"{self.path} does not exist, creating empty database file")
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("", encoding="utf-8")

        self._initialized = True

    async def wait_for_file(self) -> int:
        """
        Poll until the live file exists.

        Returns:
            Number of sleeps it took

        Raises:
            FileUnavailableError: After ``max_poll_attempts`` sleeps without the file
        """
        attempts = 0
        while not self.path.exists():
            if attempts >= self.max_poll_attempts:
                raise FileUnavailableError(self.path, attempts)
            await self._sleep(self.poll_interval)
            attempts += 1

        if attempts:
            logger.debug(f"{self.path} became available after {attempts} polling attempts")
        return attempts

    async def read(self) -> list[UserRecord]:
        """
        Load every record from the live file.

        Returns:
            Decoded records, empty if the file is empty

        Raises:
            FileUnavailableError: Database never initialized, or never reappeared
            RecordDecodeError: File content is not a list of user records
            StoreIOError: The file could not be read
        """
        if not self._initialized and not self.exists():
            raise FileUnavailableError(self.path, 0)

        await self.wait_for_file()

        loop = asyncio.get_event_loop()
        try:
            content = await loop.run_in_executor(None, self._read_snapshot_file, self.path)
        except UnicodeDecodeError as e:
            raise RecordDecodeError(f"Users database {self.path} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise StoreIOError(f"Failed to read {self.path}: {e}", self.path) from e

        self._initialized = True
        records = self.decode(content)
        logger.debug(f"Loaded {len(records)} users from {self.path}")
        return records

    async def write(self, records: Iterable[UserRecord]) -> None:
        """
        Replace the file content with a snapshot of ``records``.

        The temp file is renamed back to the live name whether or not the
        write succeeds, so the live path never stays missing.

        Raises:
            FileUnavailableError: The live file never became available
            StoreIOError: Rename or write failed
        """
        data = [record.to_dict() for record in records]

        await self.wait_for_file()

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, self._rename_before_writing)
            await loop.run_in_executor(None, self._write_snapshot_file, self.temp_path, data)
        except (OSError, TypeError, ValueError) as e:
            raise StoreIOError(f"Failed to write {self.path}: {e}", self.path) from e
        finally:
            try:
                await loop.run_in_executor(None, self._rename_after_writing)
            except OSError as e:
                logger.error(f"Failed to restore {self.path} from {self.temp_path}: {e}")
                raise StoreIOError(f"Failed to restore {self.path}: {e}", self.path) from e

        logger.debug(f"Saved {len(data)} users to {self.path}")

    async def delete(self) -> None:
        """Remove the live and temp files."""
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, self._delete_files)
        except OSError as e:
            raise StoreIOError(f"Failed to delete {self.path}: {e}", self.path) from e
        self._initialized = False

    @staticmethod
    def decode(content: str) -> list[UserRecord]:
        """Decode file content into records. Blank content is an empty database."""
        if not content.strip():
            return []

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise RecordDecodeError(f"Invalid JSON in users database: {e}") from e

        if not isinstance(data, list):
            raise RecordDecodeError(
                f"Users database must be a JSON array, got {type(data).__name__}"
            )

        return [UserRecord.from_dict(item) for item in data]

    def _rename_before_writing(self) -> None:
        if self.path.exists():
            self.path.rename(self.temp_path)

    def _rename_after_writing(self) -> None:
        if self.temp_path.exists():
            self.temp_path.rename(self.path)

    def _write_snapshot_file(self, path: Path, data: list[dict[str, Any]]) -> None:
        """Synchronous file write for executor."""
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=self.json_indent, ensure_ascii=False)

    def _read_snapshot_file(self, path: Path) -> str:
        """Synchronous file read for executor."""
        with open(path, encoding="utf-8") as f:
            return f.read()

    def _delete_files(self) -> None:
        self.path.unlink(missing_ok=True)
        self.temp_path.unlink(missing_ok=True)
