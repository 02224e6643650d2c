"""
Retry helper for per-member transactions.

Exponential backoff on StorageConflict, bounded attempts.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from mlm_engine.utils.exceptions import StorageConflict


T = TypeVar("T")


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.05,
    description: str = "operation",
) -> T:
    """
    Run operation, retrying on StorageConflict.

    Delay before attempt n+1 is base_delay * 2**n. Other exceptions
    propagate immediately.

    Args:
        operation: Zero-argument coroutine factory (one transaction)
        attempts: Maximum attempts
        base_delay: Initial delay in seconds
        description: Label for log lines

    Returns:
        Result of the first successful attempt

    Raises:
        StorageConflict: If every attempt conflicted
    """
    for attempt in range(attempts):
        try:
            return await operation()
        except StorageConflict as e:
            if attempt == attempts - 1:
                logger.error(
                    f"{description} failed after {attempts} attempts: {e}"
                )
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"{description} conflicted (attempt {attempt + 1}/{attempts}), "
                f"retrying in {delay:.2f}s: {e}"
            )
            await asyncio.sleep(delay)

    raise StorageConflict(f"{description}: no attempts made")
