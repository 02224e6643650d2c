"""
Qualification repository.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.rank_qualification import RankQualificationRecord
from mlm_engine.repositories.base import BaseRepository


class QualificationRepository(BaseRepository[RankQualificationRecord]):
    """Rank qualification history (append-only)."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize qualification repository."""
        super().__init__(RankQualificationRecord, session)

    async def get_record(
        self, member_id: int, period: str
    ) -> RankQualificationRecord | None:
        """Get the record of a member for a period."""
        return await self.get_by(member_id=member_id, period=period)
