"""
Distributed lock.

Redis SET NX EX lock for batch jobs. Without a Redis client the lock falls
back to process-local asyncio locks, which is enough for a single worker.
"""

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger

from mlm_engine.utils.exceptions import BatchAlreadyRunningError


# Release only if we still own the key
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_local_locks: dict[str, asyncio.Lock] = {}


class DistributedLock:
    """
    Run-lock for batch jobs.

    Usage:
        lock = DistributedLock(redis_client=redis_client)
        async with lock.lock("payout_sweep", timeout=600):
            ...

    A second holder does not wait: BatchAlreadyRunningError is raised.
    """

    KEY_PREFIX = "mlm_engine:lock:"

    def __init__(self, redis_client=None) -> None:
        self.redis_client = redis_client

    @asynccontextmanager
    async def lock(self, name: str, timeout: int = 600) -> AsyncIterator[None]:
        """
        Hold the named run-lock for the duration of the block.

        Args:
            name: Lock name (one per batch job)
            timeout: Expiry in seconds, protects against crashed holders

        Raises:
            BatchAlreadyRunningError: If the lock is held elsewhere
        """
        if self.redis_client is None:
            async with self._local_lock(name):
                yield
            return

        key = f"{self.KEY_PREFIX}{name}"
        token = uuid.uuid4().hex
        acquired = await self.redis_client.set(key, token, nx=True, ex=timeout)
        if not acquired:
            logger.warning(f"Run-lock '{name}' is held, skipping run")
            raise BatchAlreadyRunningError(name)

        logger.debug(f"Run-lock '{name}' acquired", extra={"timeout": timeout})
        try:
            yield
        finally:
            try:
                await self.redis_client.eval(_RELEASE_SCRIPT, 1, key, token)
            except Exception as e:
                logger.error(f"Failed to release run-lock '{name}': {e}")

    @asynccontextmanager
    async def _local_lock(self, name: str) -> AsyncIterator[None]:
        local = _local_locks.setdefault(name, asyncio.Lock())
        if local.locked():
            logger.warning(f"Run-lock '{name}' is held, skipping run")
            raise BatchAlreadyRunningError(name)
        async with local:
            yield
