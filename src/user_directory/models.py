"""
Data model for the user directory.

Kept apart from the store and persistence modules so both can import
the record type without importing each other.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import RecordDecodeError

# Persisted JSON key for each record attribute
FIELD_NAMES: dict[str, str] = {
    "id": "id",
    "email": "email",
    "password": "password",
    "auth_token": "authToken",
    "auth_jwt_token": "authJwtToken",
    "client_ip_address_white_list": "clientIpAddressWhiteList",
    "password_reset_token": "passwordResetToken",
    "password_reset_jwt_token": "passwordResetJwtToken",
}

_REQUIRED_KEYS = ("id", "email", "password")
_TOKEN_KEYS = ("authToken", "authJwtToken", "passwordResetToken", "passwordResetJwtToken")


def new_user_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class UserRecord:
    """One user's durable profile and session-token state.

    Records are immutable. Change a user by building a replacement record
    (``dataclasses.replace``) and handing it to the directory.

    Attributes:
        id: Primary key, generated when not supplied
        email: Login email, indexed for lookup
        password: Hashed and salted password, opaque to the directory
        auth_token: Bearer session token, indexed when non-empty
        auth_jwt_token: Signed session token, indexed when non-empty
        client_ip_address_white_list: Ordered client IP addresses
        password_reset_token: Present only while a password reset is pending
        password_reset_jwt_token: Present only while a password reset is pending
    """

    email: str
    password: str
    id: str = field(default_factory=new_user_id)
    auth_token: str = ""
    auth_jwt_token: str = ""
    client_ip_address_white_list: tuple[str, ...] = ()
    password_reset_token: Optional[str] = None
    password_reset_jwt_token: Optional[str] = None

    def __post_init__(self) -> None:
        # Lists handed in by callers are frozen so the store never shares them
        object.__setattr__(
            self, "client_ip_address_white_list", tuple(self.client_ip_address_white_list)
        )

    @property
    def is_reset_pending(self) -> bool:
        return self.password_reset_token is not None or self.password_reset_jwt_token is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert the record to its persisted JSON shape."""
        data = {json_key: getattr(self, attr) for attr, json_key in FIELD_NAMES.items()}
        data["clientIpAddressWhiteList"] = list(self.client_ip_address_white_list)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> UserRecord:
        """
        Build a record from its persisted JSON shape.

        Args:
            data: Decoded JSON object for one record

        Returns:
            The decoded UserRecord

        Raises:
            RecordDecodeError: If the object is not a valid record
        """
        if not isinstance(data, dict):
            raise RecordDecodeError(f"Expected a JSON object for a user record, got {type(data).__name__}")

        missing = [key for key in _REQUIRED_KEYS if not isinstance(data.get(key), str)]
        if missing:
            raise RecordDecodeError(f"User record is missing required fields: {', '.join(missing)}")

        white_list = data.get("clientIpAddressWhiteList") or []
        if not isinstance(white_list, list) or not all(isinstance(ip, str) for ip in white_list):
            raise RecordDecodeError(
                f"User record {data['id']} has an invalid clientIpAddressWhiteList"
            )

        # Null tokens fall back to the field defaults
        for key in _TOKEN_KEYS:
            if data.get(key) is not None and not isinstance(data[key], str):
                raise RecordDecodeError(f"User record {data['id']} has an invalid {key}")

        kwargs = {
            attr: data[json_key]
            for attr, json_key in FIELD_NAMES.items()
            if json_key in data and data[json_key] is not None
        }
        kwargs["client_ip_address_white_list"] = tuple(white_list)
        return cls(**kwargs)
