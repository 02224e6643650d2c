"""
PayoutSettings model.

Per-member payout preferences.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from mlm_engine.models.base import Base
from mlm_engine.models.enums import PaymentMethod
from mlm_engine.models.types import MoneyType


class PayoutSettings(Base):
    """Payout preferences (threshold, method, auto payout)."""

    __tablename__ = "payout_settings"
    __table_args__ = (
        CheckConstraint(
            "minimum_threshold > 0", name="check_payout_threshold_positive"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    minimum_threshold: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("50")
    )
    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentMethod.BANK_TRANSFER.value
    )
    auto_payout: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return (
            f"<PayoutSettings(member_id={self.member_id}, "
            f"threshold={self.minimum_threshold}, method={self.payment_method}, "
            f"auto={self.auto_payout})>"
        )
