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
Configuration module for the user directory.
Centralizes all configuration values and environment variables
"""

import os
from dataclasses import dataclass, field
from typing import Any


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DirectoryConfig:
    """Configuration for the user directory and its snapshot file"""

    # Storage Configuration
    users_db_path: str = field(default_factory=lambda: os.getenv("USERS_DB_PATH", "usersDB.json"))
    json_indent: int = field(default_factory=lambda: int(os.getenv("USERS_DB_JSON_INDENT", "2")))

    # Polling Configuration
    poll_interval: float = field(
        default_factory=lambda: float(os.getenv("USERS_DB_POLL_INTERVAL", "0.1"))
    )
    max_poll_attempts: int = field(
        default_factory=lambda: int(os.getenv("USERS_DB_MAX_POLL_ATTEMPTS", "20"))
    )

    # Save failures are raised to the caller instead of only being logged
    strict_saves: bool = field(default_factory=lambda: _env_flag("USERS_DB_STRICT_SAVES"))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "WARNING").upper())

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary"""
        return {
            "users_db_path": self.users_db_path,
            "json_indent": self.json_indent,
            "poll_interval": self.poll_interval,
            "max_poll_attempts": self.max_poll_attempts,
            "strict_saves": self.strict_saves,
            "log_level": self.log_level,
        }


# Global configuration instance
config = DirectoryConfig()
