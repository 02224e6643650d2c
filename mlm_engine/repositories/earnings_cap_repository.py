"""
Earnings cap repository.
"""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.earnings_cap_state import EarningsCapState
from mlm_engine.repositories.base import BaseRepository
from mlm_engine.utils.datetime_utils import utc_now


class EarningsCapRepository(BaseRepository[EarningsCapState]):
    """Earnings cap state repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize earnings cap repository."""
        super().__init__(EarningsCapState, session)

    async def get_for_member(
        self, member_id: int, for_update: bool = False
    ) -> EarningsCapState | None:
        """
        Get cap state of a member.

        Args:
            member_id: Member ID
            for_update: Lock the row for the check-then-act sequence
        """
        return await self.get_by(for_update=for_update, member_id=member_id)

    async def create_for_member(
        self,
        member_id: int,
        membership_tier: str | None,
        cap_limit: Decimal | None,
    ) -> EarningsCapState:
        """Create a fresh (open) cap state."""
        return await self.create(
            member_id=member_id,
            membership_tier=membership_tier,
            cap_limit=cap_limit,
            current_plan_earnings=Decimal("0"),
            warned=False,
            capped=False,
            warning_sent=False,
            cap_epoch=1,
            reset_at=utc_now(),
        )
