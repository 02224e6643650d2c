"""
Payout repository.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.payout import Payout
from mlm_engine.repositories.base import BaseRepository


class PayoutRepository(BaseRepository[Payout]):
    """Payout requests."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payout repository."""
        super().__init__(Payout, session)
