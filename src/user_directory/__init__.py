"""
User Directory
Indexed user store with JSON snapshot persistence for session authentication

Lookups by id, email, auth token and auth JWT token are served from memory.
Every change rewrites the whole snapshot file using a rename protocol so
readers never see a half-written database.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Optional

from .config import DirectoryConfig, config

logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

from .errors import (  # noqa: E402
    FileUnavailableError,
    RecordDecodeError,
    StoreError,
    StoreIOError,
    create_error_response,
)
from .index import IndexedRecordStore  # noqa: E402
from .models import UserRecord  # noqa: E402
from .persistence import SnapshotFile  # noqa: E402
from .service import UserDirectoryService, open_user_directory  # noqa: E402

__all__ = [
    "DirectoryConfig",
    "FileUnavailableError",
    "IndexedRecordStore",
    "RecordDecodeError",
    "SnapshotFile",
    "StoreError",
    "StoreIOError",
    "UserDirectoryService",
    "UserRecord",
    "config",
    "create_error_response",
    "main",
    "open_user_directory",
]

REDACTED = "********"


def _public_view(record: UserRecord) -> dict[str, Any]:
    data = record.to_dict()
    data["password"] = REDACTED
    return data


async def _summarize(cfg: DirectoryConfig, email: Optional[str]) -> dict[str, Any]:
    directory = UserDirectoryService(cfg=cfg)
    await directory.load()
    if directory.last_store_error is not None:
        return create_error_response(directory.last_store_error, "loading users database")

    if email:
        record = directory.get_by_email(email)
        if record is None:
            return {"success": False, "error": f"No user with email {email}"}
        return {"success": True, "user": _public_view(record)}

    return {
        "success": True,
        "path": str(directory.path),
        "count": directory.count(),
        "users": [_public_view(record) for record in directory.list_all()],
    }


def main() -> None:
    """Print the configured users database as JSON, or one user by email"""
    from dotenv import load_dotenv

    load_dotenv()
    cfg = DirectoryConfig()
    logging.getLogger().setLevel(cfg.log_level)

    email = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        result = asyncio.run(_summarize(cfg, email))
    except OSError as e:
        result = create_error_response(e, "opening users database")

    print(json.dumps(result, indent=2))
    if not result.get("success"):
        sys.exit(1)
