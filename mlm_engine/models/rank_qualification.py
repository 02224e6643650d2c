"""
RankQualificationRecord model.

Append-only monthly qualification history.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from mlm_engine.models.base import Base
from mlm_engine.models.types import MoneyType


class RankQualificationRecord(Base):
    """
    Qualification result for one member in one period.

    Attributes:
        personal_volume: Volume credited to the member in the period
        direct_referrals: Active direct referrals at evaluation time
        previous_rank: Rank held before the run
        computed_rank: Highest rank whose thresholds were all met
        rank_achieved: Rank held after the run (grace periods keep the old rank)
        qualified: computed_rank >= previous_rank
        demotion_pending: A grace period is open after this run
    """

    __tablename__ = "rank_qualifications"
    __table_args__ = (
        UniqueConstraint(
            "member_id", "period", name="uq_rank_qualification_member_period"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)

    personal_volume: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    direct_referrals: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    previous_rank: Mapped[str] = mapped_column(String(20), nullable=False)
    computed_rank: Mapped[str] = mapped_column(String(20), nullable=False)
    rank_achieved: Mapped[str] = mapped_column(String(20), nullable=False)
    qualified: Mapped[bool] = mapped_column(Boolean, nullable=False)
    demotion_pending: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return (
            f"<RankQualificationRecord(member_id={self.member_id}, "
            f"period={self.period}, achieved={self.rank_achieved}, "
            f"qualified={self.qualified})>"
        )
