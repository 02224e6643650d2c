"""
Member repository.

Read access to the referral forest plus rank/tier updates.
"""

from collections.abc import AsyncIterator
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.enums import MembershipTier, Rank
from mlm_engine.models.member import Member
from mlm_engine.repositories.base import BaseRepository
from mlm_engine.utils.datetime_utils import utc_now


class MemberRepository(BaseRepository[Member]):
    """Member repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize member repository."""
        super().__init__(Member, session)

    async def get_member(self, member_id: int) -> Member | None:
        """Get member by ID."""
        return await self.get_by_id(member_id)

    async def get_sponsor(self, member_id: int) -> Member | None:
        """
        Get direct sponsor of a member.

        Returns:
            Sponsor, or None for a root member or unknown member
        """
        member = await self.get_by_id(member_id)
        if not member or member.sponsor_id is None:
            return None
        return await self.get_by_id(member.sponsor_id)

    async def list_direct_referrals(self, member_id: int) -> list[Member]:
        """List members sponsored directly by member_id."""
        stmt = (
            select(Member)
            .where(Member.sponsor_id == member_id)
            .order_by(Member.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_children(
        self, sponsor_ids: list[int]
    ) -> list[tuple[int, int, bool]]:
        """
        Direct referrals of several sponsors in one query.

        Returns:
            (member_id, sponsor_id, is_active) tuples
        """
        if not sponsor_ids:
            return []
        stmt = (
            select(Member.id, Member.sponsor_id, Member.is_active)
            .where(Member.sponsor_id.in_(sponsor_ids))
            .order_by(Member.id)
        )
        result = await self.session.execute(stmt)
        return [(row[0], row[1], row[2]) for row in result.all()]

    async def count_active_direct_referrals(self, member_id: int) -> int:
        """Count active members sponsored directly by member_id."""
        stmt = select(func.count(Member.id)).where(
            Member.sponsor_id == member_id,
            Member.is_active.is_(True),
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def update_rank(
        self,
        member_id: int,
        rank: Rank,
        changed_at: datetime | None = None,
        grace_periods_used: int | None = None,
    ) -> Member | None:
        """
        Set member rank.

        Args:
            grace_periods_used: New grace period counter (demotion resets it)
        """
        data = {"rank": Rank(rank).value, "rank_changed_at": changed_at or utc_now()}
        if grace_periods_used is not None:
            data["grace_periods_used"] = grace_periods_used
        return await self.update(member_id, **data)

    async def update_tier(
        self, member_id: int, tier: MembershipTier
    ) -> Member | None:
        """Set member membership tier."""
        return await self.update(
            member_id, membership_tier=MembershipTier(tier).value
        )

    async def iter_member_ids(
        self, active_only: bool = False, batch_size: int = 500
    ) -> AsyncIterator[int]:
        """
        Iterate member IDs in ascending order using keyset pagination.

        Args:
            active_only: Only yield active members
            batch_size: Rows fetched per query
        """
        last_id = 0
        while True:
            stmt = (
                select(Member.id)
                .where(Member.id > last_id)
                .order_by(Member.id)
                .limit(batch_size)
            )
            if active_only:
                stmt = stmt.where(Member.is_active.is_(True))
            result = await self.session.execute(stmt)
            ids = list(result.scalars().all())
            if not ids:
                return
            for member_id in ids:
                yield member_id
            last_id = ids[-1]
