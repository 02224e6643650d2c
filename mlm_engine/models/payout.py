"""
Payout model.

Payout request created from matured ledger entries.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from mlm_engine.models.base import Base
from mlm_engine.models.enums import PayoutStatus
from mlm_engine.models.types import MoneyType


class Payout(Base):
    """
    Payout request.

    Attributes:
        amount: Sum of the contributing matured entries
        processing_fee: Method fee
        net_amount: amount - processing_fee
        entry_count: Number of ledger entries paid by this payout
    """

    __tablename__ = "payouts"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_payout_amount_positive"),
        CheckConstraint(
            "processing_fee >= 0", name="check_payout_fee_non_negative"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    processing_fee: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    net_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayoutStatus.PENDING.value
    )
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    entry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<Payout(id={self.id}, member_id={self.member_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
