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
User directory service.

Facade used by the authentication layer. Lookups are served from memory;
every mutation updates the in-memory store and then rewrites the snapshot
file before returning.
"""

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Optional, Union

from .config import DirectoryConfig, config
from .decorators import log_store_errors
from .errors import StoreError
from .index import IndexedRecordStore
from .models import UserRecord, new_user_id
from .persistence import SnapshotFile

logger = logging.getLogger(__name__)


class UserDirectoryService:
    """
    Indexed user directory persisted to a single JSON file.

    Save failures do not undo the in-memory change. By default they are
    logged and the mutation still returns normally, leaving memory ahead of
    disk until the next successful save. With ``strict_saves`` enabled the
    StoreError is raised to the caller instead.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        cfg: Optional[DirectoryConfig] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Initialize the directory and its database file.

        Args:
            path: Database file path, defaults to the configured path
            cfg: Configuration, defaults to the global config
            sleep: Awaitable sleep used while polling for the file
        """
        self.config = cfg or config
        self.strict_saves = self.config.strict_saves
        self.last_store_error: Optional[StoreError] = None

        self._store = IndexedRecordStore()
        self._snapshot = SnapshotFile(
            path or self.config.users_db_path,
            poll_interval=self.config.poll_interval,
            max_poll_attempts=self.config.max_poll_attempts,
            json_indent=self.config.json_indent,
            sleep=sleep,
        )
        self._snapshot.initialize()

        # Serializes mutations, loads and snapshot writes within this process
        self._save_lock = asyncio.Lock()

        logger.info(f"User directory initialized at: {self._snapshot.path}")

    @property
    def path(self) -> Path:
        return self._snapshot.path

    @property
    def snapshot(self) -> SnapshotFile:
        return self._snapshot

    # Lookups

    def list_all(self) -> list[UserRecord]:
        return self._store.get_all()

    def count(self) -> int:
        return len(self._store)

    def get_by_id(self, user_id: Optional[str]) -> Optional[UserRecord]:
        return self._store.get_by_id(user_id)

    def get_by_email(self, email: Optional[str]) -> Optional[UserRecord]:
        return self._store.get_by_email(email)

    def get_by_auth_token(self, auth_token: Optional[str]) -> Optional[UserRecord]:
        return self._store.get_by_auth_token(auth_token)

    def get_by_auth_jwt_token(self, auth_jwt_token: Optional[str]) -> Optional[UserRecord]:
        return self._store.get_by_auth_jwt_token(auth_jwt_token)

    def get_by_password_reset_token(self, token: Optional[str]) -> Optional[UserRecord]:
        return self._store.get_by_password_reset_token(token)

    def get_by_password_reset_jwt_token(self, token: Optional[str]) -> Optional[UserRecord]:
        return self._store.get_by_password_reset_jwt_token(token)

    # Mutations

    async def create(self, record: UserRecord) -> UserRecord:
        """
        Add a user, assigning a fresh id if the record has none.

        Args:
            record: User to add

        Returns:
            The stored record
        """
        self._check_record(record)
        if not record.id:
            record = dataclasses.replace(record, id=new_user_id())

        async with self._save_lock:
            self._store.put(record)
            await self._save()
        return record

    async def update(self, record: UserRecord) -> UserRecord:
        """Replace the user with the same id. Unknown ids are inserted."""
        self._check_record(record)
        if not record.id:
            raise ValueError("Cannot update a user record without an id")

        async with self._save_lock:
            self._store.put(record)
            await self._save()
        return record

    async def delete(self, record: UserRecord) -> Optional[UserRecord]:
        self._check_record(record)
        return await self.delete_by_id(record.id)

    async def delete_by_id(self, user_id: str) -> Optional[UserRecord]:
        async with self._save_lock:
            removed = self._store.remove_by_id(user_id)
            await self._save()
        return removed

    async def delete_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._save_lock:
            removed = self._store.remove_by_email(email)
            await self._save()
        return removed

    async def delete_by_auth_token(self, auth_token: str) -> Optional[UserRecord]:
        async with self._save_lock:
            removed = self._store.remove_by_auth_token(auth_token)
            await self._save()
        return removed

    async def delete_by_auth_jwt_token(self, auth_jwt_token: str) -> Optional[UserRecord]:
        async with self._save_lock:
            removed = self._store.remove_by_auth_jwt_token(auth_jwt_token)
            await self._save()
        return removed

    # Persistence

    @log_store_errors("loading users database")
    async def load(self) -> bool:
        """
        Replace the in-memory store with the content of the database file.

        Holds the mutation lock for the whole read, so a mutation started
        meanwhile is applied on top of the loaded records.

        Returns:
            True if loaded, False if the load failed and the store is empty
        """
        async with self._save_lock:
            try:
                records = await self._snapshot.read()
            except StoreError:
                self._store.clear()
                raise
            self._store.replace_all(records)
        logger.info(f"Loaded {len(records)} users from {self._snapshot.path}")
        return True

    async def delete_database(self) -> None:
        """
        Delete the database files and empty the in-memory store.

        The live file is not recreated. Later saves fail with
        FileUnavailableError until a new directory is opened on the path.
        """
        async with self._save_lock:
            await self._snapshot.delete()
            self._store.clear()
        logger.warning(f"Deleted users database {self._snapshot.path}")

    @log_store_errors("saving users database", reraise_when="strict_saves")
    async def _save(self) -> bool:
        """Write the snapshot. Callers hold ``_save_lock``."""
        await self._snapshot.write(self._store.get_all())
        self._store.rebuild_indexes()
        return True

    @staticmethod
    def _check_record(record: Any) -> None:
        if not isinstance(record, UserRecord):
            raise TypeError(f"Expected UserRecord, got {type(record).__name__}")


async def open_user_directory(
    path: Optional[Union[str, Path]] = None,
    cfg: Optional[DirectoryConfig] = None,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> UserDirectoryService:
    """
    Create a directory and load its database file.

    A failed load is logged and leaves the directory empty; check
    ``last_store_error`` on the returned service to find out why.

    Examples:
        >>> directory = await open_user_directory("usersDB.json")
        >>> directory.get_by_email("a@b.c")
    """
    service = UserDirectoryService(path, cfg=cfg, sleep=sleep)
    await service.load()
    return service
