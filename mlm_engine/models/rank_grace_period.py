"""
RankGracePeriod model.

Pending demotion window.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from mlm_engine.models.base import Base
from mlm_engine.models.enums import GracePeriodStatus


class RankGracePeriod(Base):
    """
    Grace period opened by a computed demotion.

    pending -> cancelled (re-qualified) | applied (expired, demotion applied).
    target_rank tracks the latest computed rank while pending.
    """

    __tablename__ = "rank_grace_periods"
    __table_args__ = (
        Index("idx_grace_status_ends", "status", "ends_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_rank: Mapped[str] = mapped_column(String(20), nullable=False)
    target_rank: Mapped[str] = mapped_column(String(20), nullable=False)
    opened_period: Mapped[str] = mapped_column(String(7), nullable=False)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    ends_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GracePeriodStatus.PENDING.value
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<RankGracePeriod(member_id={self.member_id}, "
            f"{self.from_rank}->{self.target_rank}, status={self.status})>"
        )
