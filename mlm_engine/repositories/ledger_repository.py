"""
Ledger repository.

Commission ledger access: idempotent inserts, maturity and payout marking.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.commission_ledger_entry import CommissionLedgerEntry
from mlm_engine.models.enums import LedgerStatus
from mlm_engine.repositories.base import BaseRepository
from mlm_engine.utils.datetime_utils import utc_now
from mlm_engine.utils.money import CENT


class LedgerRepository(BaseRepository[CommissionLedgerEntry]):
    """Commission ledger repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger repository."""
        super().__init__(CommissionLedgerEntry, session)

    async def get_by_key(
        self, idempotency_key: str
    ) -> CommissionLedgerEntry | None:
        """Get entry by idempotency key."""
        return await self.get_by(idempotency_key=idempotency_key)

    async def create_entry_if_absent(
        self, idempotency_key: str, **entry: Any
    ) -> tuple[CommissionLedgerEntry, bool]:
        """
        Insert entry unless the idempotency key already exists.

        A concurrent insert of the same key fails the flush on the UNIQUE
        constraint; the unit of work turns that into StorageConflict and
        the retry finds the existing row.

        Returns:
            (entry, created)
        """
        existing = await self.get_by_key(idempotency_key)
        if existing:
            return existing, False
        created = await self.create(idempotency_key=idempotency_key, **entry)
        return created, True

    async def mature_pending(
        self,
        cutoff: datetime,
        matured_at: datetime | None = None,
        recipient_id: int | None = None,
    ) -> int:
        """
        Move pending entries created at or before cutoff to matured.

        Returns:
            Number of entries matured
        """
        stmt = (
            update(CommissionLedgerEntry)
            .where(
                CommissionLedgerEntry.status == LedgerStatus.PENDING.value,
                CommissionLedgerEntry.created_at <= cutoff,
            )
            .values(
                status=LedgerStatus.MATURED.value,
                matured_at=matured_at or utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if recipient_id is not None:
            stmt = stmt.where(CommissionLedgerEntry.recipient_id == recipient_id)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def list_recipients_with_matured(self) -> list[int]:
        """Members holding matured unpaid entries."""
        stmt = (
            select(CommissionLedgerEntry.recipient_id)
            .where(CommissionLedgerEntry.status == LedgerStatus.MATURED.value)
            .distinct()
            .order_by(CommissionLedgerEntry.recipient_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_unpaid_matured(
        self, recipient_id: int, as_of: datetime, for_update: bool = False
    ) -> list[CommissionLedgerEntry]:
        """Matured unpaid entries of a member, matured at or before as_of."""
        stmt = (
            select(CommissionLedgerEntry)
            .where(
                CommissionLedgerEntry.recipient_id == recipient_id,
                CommissionLedgerEntry.status == LedgerStatus.MATURED.value,
                CommissionLedgerEntry.matured_at <= as_of,
            )
            .order_by(CommissionLedgerEntry.id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sum_unpaid_matured(
        self, recipient_id: int, as_of: datetime
    ) -> Decimal:
        """Sum of matured unpaid entries of a member as of a moment."""
        stmt = select(
            func.coalesce(func.sum(CommissionLedgerEntry.amount), 0)
        ).where(
            CommissionLedgerEntry.recipient_id == recipient_id,
            CommissionLedgerEntry.status == LedgerStatus.MATURED.value,
            CommissionLedgerEntry.matured_at <= as_of,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0)).quantize(CENT)

    async def mark_paid(
        self, entry_ids: list[int], payout_id: int, paid_at: datetime | None = None
    ) -> int:
        """
        Mark matured entries paid by a payout.

        Only entries still in matured status are touched; the caller compares
        the returned count with len(entry_ids).

        Returns:
            Number of entries marked paid
        """
        if not entry_ids:
            return 0
        stmt = (
            update(CommissionLedgerEntry)
            .where(
                CommissionLedgerEntry.id.in_(entry_ids),
                CommissionLedgerEntry.status == LedgerStatus.MATURED.value,
            )
            .values(
                status=LedgerStatus.PAID.value,
                paid_at=paid_at or utc_now(),
                payout_id=payout_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
