"""
Grace period repository.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.enums import GracePeriodStatus
from mlm_engine.models.rank_grace_period import RankGracePeriod
from mlm_engine.repositories.base import BaseRepository


class GracePeriodRepository(BaseRepository[RankGracePeriod]):
    """Pending demotion windows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize grace period repository."""
        super().__init__(RankGracePeriod, session)

    async def get_pending(
        self, member_id: int, for_update: bool = False
    ) -> RankGracePeriod | None:
        """Open grace period of a member, if any."""
        return await self.get_by(
            for_update=for_update,
            member_id=member_id,
            status=GracePeriodStatus.PENDING.value,
        )

    async def list_expired_member_ids(self, as_of: datetime) -> list[int]:
        """Members whose pending grace period ended at or before as_of."""
        stmt = (
            select(RankGracePeriod.member_id)
            .where(
                RankGracePeriod.status == GracePeriodStatus.PENDING.value,
                RankGracePeriod.ends_at <= as_of,
            )
            .order_by(RankGracePeriod.member_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
