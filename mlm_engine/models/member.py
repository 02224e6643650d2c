"""
Member model.

Represents a node of the referral forest.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from mlm_engine.models.base import Base
from mlm_engine.models.enums import Rank


class Member(Base):
    """
    Member entity.

    The sponsor link is set at registration and never changes afterwards;
    the forest of sponsor links must never contain a cycle.

    Attributes:
        id: Primary key
        sponsor_id: Direct sponsor (None for a root member)
        rank: Achievement rank (Rank value)
        membership_tier: Purchased plan (MembershipTier value, None before first purchase)
        is_active: Whether member counts as active for qualification
        grace_periods_used: Grace periods opened since the last demotion
        created_at: Registration timestamp
        rank_changed_at: Last time rank was applied
    """

    __tablename__ = "members"
    __table_args__ = (
        CheckConstraint(
            "sponsor_id IS NULL OR sponsor_id != id",
            name="check_member_not_own_sponsor",
        ),
        Index("idx_member_sponsor_active", "sponsor_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    sponsor_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    rank: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Rank.BRONZE.value
    )
    membership_tier: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    grace_periods_used: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    rank_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Member(id={self.id}, sponsor_id={self.sponsor_id}, "
            f"rank={self.rank}, tier={self.membership_tier})>"
        )
