"""
CommissionEvent model.

One row per accepted triggering event (task completion, purchase).
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from mlm_engine.models.base import Base
from mlm_engine.models.types import MoneyType


class CommissionEvent(Base):
    """
    Accepted triggering event.

    Inserting this row is what credits the source member's personal volume,
    so a redelivered event never counts twice.
    """

    __tablename__ = "commission_events"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_event_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(
        String(128), nullable=False, unique=True
    )
    source_member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return (
            f"<CommissionEvent(event_id={self.event_id!r}, "
            f"source={self.source_member_id}, amount={self.amount})>"
        )
