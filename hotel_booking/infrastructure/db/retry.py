"""
Retry of database operations that fail on transient lock contention.

MySQL reports deadlocks (1213) and lock wait timeouts (1205); SQLite reports
"database is locked" when a concurrent writer holds the file. Each retried
call must open its own transaction.
"""

import asyncio
import logging
from functools import wraps
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# MySQL error codes
MYSQL_DEADLOCK_ERROR = "1213"
MYSQL_LOCK_WAIT_TIMEOUT = "1205"
SQLITE_LOCKED = "database is locked"

TRANSIENT_MARKERS = (MYSQL_DEADLOCK_ERROR, MYSQL_LOCK_WAIT_TIMEOUT, SQLITE_LOCKED)


def is_deadlock_error(error: Exception) -> bool:
    if isinstance(error, (OperationalError, DBAPIError)):
        error_str = str(error)
        return any(marker in error_str for marker in TRANSIENT_MARKERS)
    return False


async def retry_on_deadlock(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.1,
) -> T:
    """
    Run `func`, retrying with exponential backoff (base_delay * 2 ** attempt)
    while it fails with a lock error.

    Any other exception, or the last lock error, propagates unchanged.
    """
    for attempt in range(max_attempts):
        try:
            return await func()
        except (OperationalError, DBAPIError) as e:
            if not is_deadlock_error(e):
                raise
            if attempt == max_attempts - 1:
                logger.error(
                    "Database lock persists after max retries",
                    extra={"attempts": max_attempts, "error": str(e)},
                )
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Database lock detected, retrying",
                extra={
                    "attempt": attempt + 1,
                    "max_attempts": max_attempts,
                    "retry_delay": delay,
                    "error": str(e),
                },
            )
            await asyncio.sleep(delay)
    raise RuntimeError("retry_on_deadlock called with max_attempts < 1")


def with_deadlock_retry(max_attempts: int = 3, base_delay: float = 0.1):
    """Decorator form of retry_on_deadlock for async methods."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            async def execute():
                return await func(*args, **kwargs)

            return await retry_on_deadlock(execute, max_attempts, base_delay)

        return wrapper

    return decorator
