"""
Async runner for dramatiq tasks.

Provides a thread-safe way to run async code in dramatiq actors.
Each worker thread keeps one event loop; each task builds its own NullPool
engine so connections never cross loops.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import redis.asyncio as redis
from loguru import logger

from jobs.utils.database import create_task_engine, create_task_session_maker
from mlm_engine.config.settings import settings
from mlm_engine.services.mlm_engine_service import MLMEngineService

T = TypeVar("T")

# Thread-local storage for event loops
_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """
    Get or create event loop for current thread.

    Reusing one loop per thread prevents "Future attached to a different
    loop" errors.
    """
    loop = getattr(_thread_local, "loop", None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.loop = loop
        logger.debug(
            f"Created new event loop for thread {threading.current_thread().name}"
        )
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run async coroutine in the thread's event loop.

    Args:
        coro: Async coroutine to run

    Returns:
        Result of the coroutine
    """
    loop = get_event_loop()
    try:
        return loop.run_until_complete(coro)
    except Exception as e:
        logger.exception(f"Error running async coroutine: {e}")
        raise


def create_redis_client() -> redis.Redis:
    """Redis client for run-locks."""
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password,
        db=settings.redis_db,
        decode_responses=True,
    )


@asynccontextmanager
async def engine_service() -> AsyncIterator[MLMEngineService]:
    """
    Engine service bound to the current event loop.

    Usage:
        async with engine_service() as engine:
            await engine.run_payout_sweep("2026-09")
    """
    db_engine = create_task_engine()
    redis_client = create_redis_client()
    try:
        yield MLMEngineService(
            create_task_session_maker(db_engine),
            redis_client=redis_client,
        )
    finally:
        await redis_client.aclose()
        await db_engine.dispose()
