"""Tests for per-member locks."""

import asyncio

import pytest

from mlm_engine.utils.member_locks import MemberLockRegistry


class TestMemberLockRegistry:
    """Test per-member serialization."""

    @pytest.mark.asyncio
    async def test_same_member_serialized(self):
        locks = MemberLockRegistry()
        active = 0
        peak = 0

        async def work():
            nonlocal active, peak
            async with locks.hold(1):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(work() for _ in range(5)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_different_members_concurrent(self):
        locks = MemberLockRegistry()
        inside = asyncio.Event()

        async def first():
            async with locks.hold(1):
                await asyncio.wait_for(inside.wait(), timeout=1)

        async def second():
            async with locks.hold(2):
                inside.set()

        await asyncio.gather(first(), second())

    @pytest.mark.asyncio
    async def test_locks_released_after_use(self):
        locks = MemberLockRegistry()

        async with locks.hold(1):
            assert len(locks) == 1

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = MemberLockRegistry()

        with pytest.raises(RuntimeError):
            async with locks.hold(1):
                raise RuntimeError("boom")

        assert len(locks) == 0
