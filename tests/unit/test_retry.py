"""Tests for conflict retry."""

import pytest

from mlm_engine.utils.exceptions import StorageConflict, ValidationError
from mlm_engine.utils.retry import retry_on_conflict


class TestRetryOnConflict:
    """Test bounded retry with backoff."""

    @pytest.mark.asyncio
    async def test_succeeds_after_conflicts(self):
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise StorageConflict("serialization failure")
            return "ok"

        result = await retry_on_conflict(operation, attempts=3, base_delay=0)

        assert result == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_raises_after_last_attempt(self):
        calls = []

        async def operation():
            calls.append(1)
            raise StorageConflict("deadlock")

        with pytest.raises(StorageConflict):
            await retry_on_conflict(operation, attempts=2, base_delay=0)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        calls = []

        async def operation():
            calls.append(1)
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            await retry_on_conflict(operation, attempts=5, base_delay=0)
        assert len(calls) == 1
