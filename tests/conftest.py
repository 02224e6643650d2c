"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for settings validation
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("STORAGE_RETRY_BASE_DELAY", "0")
os.environ.setdefault("ENVIRONMENT", "test")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from mlm_engine.models.earnings_cap_state import EarningsCapState
from mlm_engine.services.earnings_cap_guard import CapNotification
from mlm_engine.services.rate_table import CompensationPlanRegistry


class RecordingNotifier:
    """Cap notifier that keeps every notification."""

    def __init__(self) -> None:
        self.notifications: list[CapNotification] = []

    async def notify(self, notification: CapNotification) -> None:
        self.notifications.append(notification)

    def kinds_for(self, member_id: int) -> list[str]:
        return [
            str(n.kind) for n in self.notifications if n.member_id == member_id
        ]


@pytest.fixture
def registry():
    """Registry holding the default compensation plan."""
    return CompensationPlanRegistry()


@pytest.fixture
def rate_table(registry):
    return registry.current


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def mock_redis():
    """Mock redis.asyncio client."""
    client = AsyncMock()
    client.set = AsyncMock(return_value=True)
    client.eval = AsyncMock(return_value=1)
    return client


@pytest.fixture
def make_cap_state():
    """Build an in-memory EarningsCapState (all columns explicit)."""

    def _make(
        earnings: str = "0",
        cap_limit: str | None = "50000",
        tier: str | None = "bronze_i",
        warned: bool = False,
        capped: bool = False,
        warning_sent: bool = False,
        member_id: int = 1,
    ) -> EarningsCapState:
        return EarningsCapState(
            member_id=member_id,
            membership_tier=tier,
            current_plan_earnings=Decimal(earnings),
            cap_limit=Decimal(cap_limit) if cap_limit is not None else None,
            warned=warned,
            capped=capped,
            warning_sent=warning_sent,
            cap_epoch=1,
        )

    return _make
