"""
Commission event repository.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.commission_event import CommissionEvent
from mlm_engine.repositories.base import BaseRepository


class CommissionEventRepository(BaseRepository[CommissionEvent]):
    """Accepted triggering events."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission event repository."""
        super().__init__(CommissionEvent, session)

    async def get_by_event_id(self, event_id: str) -> CommissionEvent | None:
        """Get accepted event by external event ID."""
        return await self.get_by(event_id=event_id)
