"""
Custom decorators for user directory persistence calls
"""

import logging
from collections.abc import Callable
from functools import wraps
from typing import Any, Optional, TypeVar

from .errors import FileUnavailableError, RecordDecodeError, StoreError, StoreIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def log_store_errors(
    operation: str, reraise_when: Optional[str] = None
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to log snapshot load/save failures on directory methods.

    The failure is stored on ``self.last_store_error`` and the call returns
    False. If ``reraise_when`` names a truthy attribute of ``self`` the error
    is raised again after logging.

    Args:
        operation: Human readable name used in log messages
        reraise_when: Attribute of the instance that turns on re-raising
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            try:
                result = await func(self, *args, **kwargs)  # type: ignore[misc]
            except FileUnavailableError as e:
                logger.error(f"Error {operation}: {e}")
                failure: StoreError = e
            except RecordDecodeError as e:
                logger.error(f"Error {operation}: could not decode users database: {e}")
                failure = e
            except StoreIOError as e:
                logger.error(f"Error {operation}: I/O failure: {e}")
                failure = e
            else:
                self.last_store_error = None
                return result

            self.last_store_error = failure
            if reraise_when and getattr(self, reraise_when, False):
                raise failure
            return False

        return wrapper  # type: ignore[return-value]

    return decorator
