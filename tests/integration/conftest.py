"""
Fixtures for integration tests.

Services run against a real SQLAlchemy database: sqlite+aiosqlite in a
temporary file, schema created from the models.
"""

from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from mlm_engine.config.database import create_session_maker
from mlm_engine.models import (
    Base,
    CommissionLedgerEntry,
    EarningsCapState,
    Member,
    MembershipTier,
    MemberVolume,
    Rank,
)
from mlm_engine.models.enums import CommissionType, LedgerStatus
from mlm_engine.repositories.unit_of_work import unit_of_work_factory
from mlm_engine.services.mlm_engine_service import MLMEngineService


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """Session maker over a fresh sqlite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def uow_factory(session_maker):
    return unit_of_work_factory(session_maker)


@pytest.fixture
def service(session_maker, registry, notifier):
    """Engine facade with default plan and recording notifier."""
    return MLMEngineService(session_maker, registry=registry, notifier=notifier)


@pytest.fixture
def add_member(session_maker):
    """Insert a member and return its id."""

    async def _add(
        sponsor_id: int | None = None,
        tier: MembershipTier | None = MembershipTier.BRONZE_I,
        rank: Rank = Rank.BRONZE,
        is_active: bool = True,
        member_id: int | None = None,
    ) -> int:
        async with session_maker() as session:
            member = Member(
                sponsor_id=sponsor_id,
                membership_tier=tier.value if tier else None,
                rank=rank.value,
                is_active=is_active,
            )
            if member_id is not None:
                member.id = member_id
            session.add(member)
            await session.commit()
            return member.id

    return _add


@pytest.fixture
def build_chain(add_member):
    """
    Build a linear sponsor chain.

    Returns ids ordered from the source member upwards:
    [source, level 1 sponsor, level 2 sponsor, ...].
    """

    async def _build(
        ancestors: int,
        tier: MembershipTier | None = MembershipTier.BRONZE_I,
        source_tier: MembershipTier | None = None,
    ) -> list[int]:
        top_down = []
        sponsor_id = None
        for _ in range(ancestors):
            sponsor_id = await add_member(sponsor_id=sponsor_id, tier=tier)
            top_down.append(sponsor_id)
        source_id = await add_member(
            sponsor_id=sponsor_id, tier=source_tier or tier
        )
        return [source_id] + list(reversed(top_down))

    return _build


@pytest.fixture
def seed_cap_state(session_maker):
    """Insert an earnings cap state with given earnings."""

    async def _seed(
        member_id: int,
        earnings: str,
        cap_limit: str | None = "50000",
        tier: str = "bronze_i",
    ) -> None:
        async with session_maker() as session:
            session.add(
                EarningsCapState(
                    member_id=member_id,
                    membership_tier=tier,
                    current_plan_earnings=Decimal(earnings),
                    cap_limit=Decimal(cap_limit) if cap_limit else None,
                    warned=False,
                    capped=False,
                    warning_sent=False,
                    cap_epoch=1,
                )
            )
            await session.commit()

    return _seed


@pytest.fixture
def add_ledger_entry(session_maker):
    """Insert a pending ledger entry directly."""
    counter = {"n": 0}

    async def _add(
        recipient_id: int,
        amount: str,
        created_at: datetime | None = None,
        period: str = "2026-09",
    ) -> int:
        counter["n"] += 1
        event_id = f"seed-{counter['n']}"
        async with session_maker() as session:
            entry = CommissionLedgerEntry(
                idempotency_key=f"{event_id}:{recipient_id}:level",
                recipient_id=recipient_id,
                source_member_id=None,
                event_id=event_id,
                level=1,
                commission_type=CommissionType.LEVEL.value,
                amount=Decimal(amount),
                rate=Decimal("5"),
                status=LedgerStatus.PENDING.value,
                period=period,
                cap_epoch=1,
            )
            if created_at is not None:
                entry.created_at = created_at
            session.add(entry)
            await session.commit()
            return entry.id

    return _add


@pytest.fixture
def fetch_ledger(session_maker):
    """Load ledger entries, optionally filtered."""

    async def _fetch(**filters) -> list[CommissionLedgerEntry]:
        async with session_maker() as session:
            stmt = (
                select(CommissionLedgerEntry)
                .filter_by(**filters)
                .order_by(CommissionLedgerEntry.id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
def fetch_member(session_maker):
    async def _fetch(member_id: int) -> Member:
        async with session_maker() as session:
            return await session.get(Member, member_id)

    return _fetch


@pytest.fixture
def fetch_all(session_maker):
    """Load every row of a model, optionally filtered."""

    async def _fetch(model, **filters) -> list:
        async with session_maker() as session:
            stmt = select(model).filter_by(**filters).order_by(model.id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
def add_volume(session_maker):
    """Set the personal volume of a member for a period."""

    async def _add(member_id: int, period: str, amount: str) -> None:
        async with session_maker() as session:
            session.add(
                MemberVolume(
                    member_id=member_id,
                    period=period,
                    personal_volume=Decimal(amount),
                )
            )
            await session.commit()

    return _add
