"""
Payout settings repository.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.payout_settings import PayoutSettings
from mlm_engine.repositories.base import BaseRepository


class PayoutSettingsRepository(BaseRepository[PayoutSettings]):
    """Per-member payout preferences."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payout settings repository."""
        super().__init__(PayoutSettings, session)

    async def get_for_member(self, member_id: int) -> PayoutSettings | None:
        """Get settings row of a member."""
        return await self.get_by(member_id=member_id)

    async def upsert(self, member_id: int, **data: Any) -> PayoutSettings:
        """Create or update the settings row of a member."""
        row = await self.get_by(for_update=True, member_id=member_id)
        if row is None:
            return await self.create(member_id=member_id, **data)
        for key, value in data.items():
            setattr(row, key, value)
        await self.session.flush()
        return row
