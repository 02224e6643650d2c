"""
MemberVolume model.

Personal volume per member per period, incremented with each accepted event.
"""

from decimal import Decimal

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mlm_engine.models.base import Base
from mlm_engine.models.types import MoneyType


class MemberVolume(Base):
    """Personal volume counter."""

    __tablename__ = "member_volumes"
    __table_args__ = (
        UniqueConstraint("member_id", "period", name="uq_member_volume_period"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    personal_volume: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )

    def __repr__(self) -> str:
        return (
            f"<MemberVolume(member_id={self.member_id}, period={self.period}, "
            f"pv={self.personal_volume})>"
        )
