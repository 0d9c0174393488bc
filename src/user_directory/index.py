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
In-memory user record store with secondary lookup indexes.
"""

import logging
from collections.abc import Iterable
from typing import Optional

from .models import UserRecord

logger = logging.getLogger(__name__)


class IndexedRecordStore:
    """
    Authoritative in-memory set of user records.

    The primary map is keyed by record id. Email, auth token and auth JWT
    token lookups go through secondary indexes that map back to the id and
    are rebuilt from the primary map after every mutation. Password reset
    tokens are short-lived and rare, so they are found by a linear scan
    instead of an index.
    """

    def __init__(self) -> None:
        self._records: dict[str, UserRecord] = {}
        self._email_index: dict[str, str] = {}
        self._auth_token_index: dict[str, str] = {}
        self._auth_jwt_token_index: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # Lookups

    def get_all(self) -> list[UserRecord]:
        """Return a snapshot list of all records."""
        return list(self._records.values())

    def get_by_id(self, record_id: Optional[str]) -> Optional[UserRecord]:
        if not record_id:
            return None
        return self._records.get(record_id)

    def get_by_email(self, email: Optional[str]) -> Optional[UserRecord]:
        return self._lookup(self._email_index, email)

    def get_by_auth_token(self, auth_token: Optional[str]) -> Optional[UserRecord]:
        return self._lookup(self._auth_token_index, auth_token)

    def get_by_auth_jwt_token(self, auth_jwt_token: Optional[str]) -> Optional[UserRecord]:
        return self._lookup(self._auth_jwt_token_index, auth_jwt_token)

    def get_by_password_reset_token(self, token: Optional[str]) -> Optional[UserRecord]:
        if not token:
            return None
        return next(
            (r for r in self._records.values() if r.password_reset_token == token), None
        )

    def get_by_password_reset_jwt_token(self, token: Optional[str]) -> Optional[UserRecord]:
        if not token:
            return None
        return next(
            (r for r in self._records.values() if r.password_reset_jwt_token == token), None
        )

    # Mutations

    def put(self, record: UserRecord) -> UserRecord:
        """Insert a record, or fully replace the record with the same id."""
        self._records[record.id] = record
        self.rebuild_indexes()
        return record

    def replace_all(self, records: Iterable[UserRecord]) -> None:
        """Swap the whole record set for ``records``, keyed by id."""
        self._records = {record.id: record for record in records}
        self.rebuild_indexes()

    def remove_by_id(self, record_id: Optional[str]) -> Optional[UserRecord]:
        if not record_id:
            return None
        removed = self._records.pop(record_id, None)
        self.rebuild_indexes()
        return removed

    def remove_by_email(self, email: Optional[str]) -> Optional[UserRecord]:
        return self.remove_by_id(self._index_key(self._email_index, email))

    def remove_by_auth_token(self, auth_token: Optional[str]) -> Optional[UserRecord]:
        return self.remove_by_id(self._index_key(self._auth_token_index, auth_token))

    def remove_by_auth_jwt_token(self, auth_jwt_token: Optional[str]) -> Optional[UserRecord]:
        return self.remove_by_id(self._index_key(self._auth_jwt_token_index, auth_jwt_token))

    def clear(self) -> None:
        self._records.clear()
        self.rebuild_indexes()

    def rebuild_indexes(self) -> None:
        """
        Clear and repopulate every secondary index from the primary map.

        On duplicate emails or tokens the record iterated last wins.
        """
        email_index: dict[str, str] = {}
        auth_token_index: dict[str, str] = {}
        auth_jwt_token_index: dict[str, str] = {}

        for record in self._records.values():
            if record.email:
                email_index[record.email] = record.id
            if record.auth_token:
                auth_token_index[record.auth_token] = record.id
            if record.auth_jwt_token:
                auth_jwt_token_index[record.auth_jwt_token] = record.id

        self._email_index = email_index
        self._auth_token_index = auth_token_index
        self._auth_jwt_token_index = auth_jwt_token_index

        logger.debug(f"Rebuilt lookup indexes for {len(self._records)} users")

    def index_snapshot(self) -> dict[str, dict[str, str]]:
        """Copy of the secondary indexes, keyed by index name."""
        return {
            "email": dict(self._email_index),
            "auth_token": dict(self._auth_token_index),
            "auth_jwt_token": dict(self._auth_jwt_token_index),
        }

    def _lookup(self, index: dict[str, str], key: Optional[str]) -> Optional[UserRecord]:
        return self.get_by_id(self._index_key(index, key))

    @staticmethod
    def _index_key(index: dict[str, str], key: Optional[str]) -> Optional[str]:
        if not key:
            return None
        return index.get(key)
