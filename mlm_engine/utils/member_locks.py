"""
Per-member locks.

Serializes read-modify-write work on a single member inside one process.
Row locks (SELECT ... FOR UPDATE) on the cap state cover other processes.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class MemberLockRegistry:
    """One asyncio.Lock per member id, dropped when no longer used."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._waiters: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, member_id: int) -> AsyncIterator[None]:
        """Hold the lock of member_id for the duration of the block."""
        lock = self._locks.get(member_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[member_id] = lock
        self._waiters[member_id] = self._waiters.get(member_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[member_id] -= 1
            if self._waiters[member_id] == 0:
                del self._waiters[member_id]
                del self._locks[member_id]

    def __len__(self) -> int:
        return len(self._locks)
