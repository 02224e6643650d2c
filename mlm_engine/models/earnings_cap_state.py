"""
EarningsCapState model.

Cumulative in-plan earnings of a member against the cap of their tier.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from mlm_engine.models.base import Base
from mlm_engine.models.types import MoneyType


class EarningsCapState(Base):
    """
    Earnings cap state, one row per member.

    cap_limit NULL is the unlimited sentinel of the top tier.
    cap_epoch increments on every tier reset; ledger entries remember the
    epoch they were credited in.
    """

    __tablename__ = "earnings_cap_states"
    __table_args__ = (
        CheckConstraint(
            "current_plan_earnings >= 0",
            name="check_cap_earnings_non_negative",
        ),
        CheckConstraint(
            "cap_limit IS NULL OR cap_limit > 0",
            name="check_cap_limit_positive",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    membership_tier: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )

    current_plan_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    cap_limit: Mapped[Decimal | None] = mapped_column(MoneyType, nullable=True)

    warned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    capped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    warning_sent: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    cap_epoch: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    reset_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=lambda: datetime.now(UTC),
    )

    @property
    def is_unlimited(self) -> bool:
        return self.cap_limit is None and self.membership_tier is not None

    def __repr__(self) -> str:
        return (
            f"<EarningsCapState(member_id={self.member_id}, "
            f"earnings={self.current_plan_earnings}, cap={self.cap_limit}, "
            f"warned={self.warned}, capped={self.capped})>"
        )
