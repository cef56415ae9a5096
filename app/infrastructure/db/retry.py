"""
Retry helpers for transient database contention.

Deadlocks and lock-wait timeouts are safe to retry because every unit of
work either commits whole or rolls back whole. Anything else propagates
on the first failure.
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

# PostgreSQL SQLSTATEs
POSTGRES_DEADLOCK_DETECTED = "40P01"
POSTGRES_SERIALIZATION_FAILURE = "40001"

# SQLite busy/locked
SQLITE_LOCKED_MESSAGES = ("database is locked", "database table is locked")


def is_deadlock_error(error: Exception) -> bool:
    """True when the error is lock contention that a fresh attempt may clear."""
    if not isinstance(error, (OperationalError, DBAPIError)):
        return False
    text = str(error)
    if MYSQL_DEADLOCK_ERROR in text or MYSQL_LOCK_WAIT_TIMEOUT in text:
        return True
    if POSTGRES_DEADLOCK_DETECTED in text or POSTGRES_SERIALIZATION_FAILURE in text:
        return True
    lowered = text.lower()
    return any(message in lowered for message in SQLITE_LOCKED_MESSAGES)


async def retry_on_deadlock(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.1,
) -> T:
    """
    Await ``func()`` and retry it on lock contention.

    Backoff is exponential: ``base_delay * 2 ** attempt``. Non-contention
    errors and the last contention error are re-raised unchanged.

    Example:
        async def run_sweep():
            return await use_cases["sweeps"]["attendance"](now)

        report = await retry_on_deadlock(run_sweep)
    """
    for attempt in range(max_attempts):
        try:
            return await func()
        except Exception as e:
            if not is_deadlock_error(e):
                raise

            if attempt == max_attempts - 1:
                logger.error(
                    "Database contention persists after max retries",
                    extra={"attempts": max_attempts, "error": str(e)},
                )
                raise

            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Database contention detected, retrying",
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
    """Decorator form of ``retry_on_deadlock`` for async callables."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            async def execute():
                return await func(*args, **kwargs)

            return await retry_on_deadlock(execute, max_attempts, base_delay)

        return wrapper

    return decorator
