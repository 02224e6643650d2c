"""
Volume repository.

Personal volume counters per member per period.
"""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.member_volume import MemberVolume
from mlm_engine.repositories.base import BaseRepository


class VolumeRepository(BaseRepository[MemberVolume]):
    """Member volume repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize volume repository."""
        super().__init__(MemberVolume, session)

    async def add_volume(
        self, member_id: int, period: str, amount: Decimal
    ) -> MemberVolume:
        """Increment personal volume of a member for a period."""
        row = await self.get_by(
            for_update=True, member_id=member_id, period=period
        )
        if row is None:
            return await self.create(
                member_id=member_id, period=period, personal_volume=amount
            )
        row.personal_volume = row.personal_volume + amount
        await self.session.flush()
        return row

    async def get_personal_volume(self, member_id: int, period: str) -> Decimal:
        """Personal volume for a period (zero when absent)."""
        row = await self.get_by(member_id=member_id, period=period)
        return row.personal_volume if row else Decimal("0")
