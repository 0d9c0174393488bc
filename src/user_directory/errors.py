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
Error types for the user directory and structured error responses.

Lookups never raise: absence is an empty result. These errors come only
from loading and saving the snapshot file.
"""

from pathlib import Path
from typing import Any, Optional, Union


class StoreError(Exception):
    """Base class for snapshot persistence failures."""


class FileUnavailableError(StoreError):
    """The database file did not appear within the polling budget."""

    def __init__(self, path: Union[str, Path], attempts: int):
        self.path = Path(path)
        self.attempts = attempts
        super().__init__(f"File {self.path} does not exist after {attempts} attempts.")


class RecordDecodeError(StoreError):
    """Stored JSON could not be parsed into a list of user records."""


class StoreIOError(StoreError):
    """Underlying read, write or rename failure."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        super().__init__(message)


def create_error_response(error: Exception, context: str) -> dict[str, Any]:
    """
    Create error response with recovery hints.

    Args:
        error: The exception that occurred
        context: Context about where the error occurred

    Returns:
        Dict with error details and recovery hints
    """
    error_type = type(error).__name__
    response: dict[str, Any] = {
        "success": False,
        "error": str(error),
        "error_type": error_type,
        "context": context,
    }

    if isinstance(error, FileUnavailableError):
        response.update(
            {
                "diagnosis": "Database file stayed unavailable for the whole polling window",
                "details": {"path": str(error.path), "attempts": error.attempts},
                "actions": [
                    f"Check that {error.path} exists and is readable",
                    f"Look for a leftover __{error.path.name} from an interrupted write",
                    "Raise USERS_DB_MAX_POLL_ATTEMPTS if another writer is slow",
                ],
            }
        )

    elif isinstance(error, RecordDecodeError):
        response.update(
            {
                "diagnosis": "Database file is not a JSON array of user records",
                "actions": [
                    "Inspect the file for truncation or manual edits",
                    "Restore it from a backup, or delete it to start empty",
                ],
            }
        )

    elif isinstance(error, (StoreIOError, OSError)):
        path = getattr(error, "path", None) or getattr(error, "filename", None)
        response.update(
            {
                "diagnosis": "Filesystem error while accessing the database",
                "details": {"path": str(path) if path else None},
                "actions": ["Check permissions and free space on the database directory"],
            }
        )

    else:
        response.update(
            {
                "diagnosis": f"Unexpected error in {context}",
                "actions": ["Check the logs for details"],
            }
        )

    return response
