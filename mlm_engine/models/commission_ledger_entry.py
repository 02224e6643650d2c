"""
CommissionLedgerEntry model.

Immutable commission record; only status fields move after creation.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from mlm_engine.models.base import Base
from mlm_engine.models.enums import LedgerStatus
from mlm_engine.models.types import MoneyType, RateType


def build_idempotency_key(
    event_id: str, recipient_id: int, commission_type: str
) -> str:
    """Idempotency key: one entry per (event, recipient, type)."""
    return f"{event_id}:{recipient_id}:{commission_type}"


class CommissionLedgerEntry(Base):
    """
    Commission ledger entry.

    Attributes:
        id: Primary key
        idempotency_key: "{event_id}:{recipient_id}:{type}", unique
        recipient_id: Member credited
        source_member_id: Member whose event triggered the commission
        event_id: Triggering event (or period pass id for bonuses)
        level: Upline distance (0 for period bonuses)
        commission_type: CommissionType value
        amount: Credited amount (after cap truncation), never negative
        rate: Level rate percent or multiplier applied
        status: pending -> matured -> paid
        period: YYYY-MM
        cap_epoch: Cap period of the recipient the entry counted against
        payout_id: Payout that paid this entry
    """

    __tablename__ = "commission_ledger"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_ledger_amount_non_negative"),
        CheckConstraint("level >= 0", name="check_ledger_level_non_negative"),
        Index("idx_ledger_recipient_status", "recipient_id", "status"),
        Index("idx_ledger_recipient_epoch", "recipient_id", "cap_epoch"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )

    recipient_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_member_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="SET NULL"),
        nullable=True,
    )
    event_id: Mapped[str] = mapped_column(
        String(128), nullable=False, index=True
    )

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    rate: Mapped[Decimal | None] = mapped_column(RateType, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LedgerStatus.PENDING.value,
        index=True,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    cap_epoch: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    matured_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payout_id: Mapped[int | None] = mapped_column(
        ForeignKey("payouts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionLedgerEntry(id={self.id}, recipient_id={self.recipient_id}, "
            f"type={self.commission_type}, level={self.level}, "
            f"amount={self.amount}, status={self.status})>"
        )
