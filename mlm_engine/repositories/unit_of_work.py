"""
Unit of work.

Groups all repositories over one AsyncSession. Commits on success, rolls
back whatever was not committed, detaches loaded rows so callers can read
them after the block, and translates integrity/operational errors raised by the
driver into StorageConflict so callers can retry the whole transaction.
"""

from collections.abc import Callable
from types import TracebackType

from loguru import logger
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mlm_engine.repositories.commission_event_repository import (
    CommissionEventRepository,
)
from mlm_engine.repositories.earnings_cap_repository import EarningsCapRepository
from mlm_engine.repositories.grace_period_repository import GracePeriodRepository
from mlm_engine.repositories.ledger_repository import LedgerRepository
from mlm_engine.repositories.member_repository import MemberRepository
from mlm_engine.repositories.payout_repository import PayoutRepository
from mlm_engine.repositories.payout_settings_repository import (
    PayoutSettingsRepository,
)
from mlm_engine.repositories.qualification_repository import (
    QualificationRepository,
)
from mlm_engine.repositories.volume_repository import VolumeRepository
from mlm_engine.utils.exceptions import StorageConflict


class UnitOfWork:
    """
    One transaction with every repository bound to it.

    Usage:
        async with UnitOfWork(session_maker) as uow:
            member = await uow.members.get_member(1)
            ...
            await uow.commit()

    Leaving the block without commit() rolls back.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self._session_maker()
        session = self.session
        self.members = MemberRepository(session)
        self.ledger = LedgerRepository(session)
        self.caps = EarningsCapRepository(session)
        self.events = CommissionEventRepository(session)
        self.volumes = VolumeRepository(session)
        self.qualifications = QualificationRepository(session)
        self.grace_periods = GracePeriodRepository(session)
        self.payouts = PayoutRepository(session)
        self.payout_settings = PayoutSettingsRepository(session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        try:
            if exc_type is None:
                # Rows returned from the block stay readable once detached;
                # rollback would expire them.
                self.session.expunge_all()
            await self.session.rollback()
        except Exception as rollback_error:
            logger.error(f"Failed to rollback unit of work: {rollback_error}")
        finally:
            await self.session.close()

        if isinstance(exc, (IntegrityError, OperationalError)):
            raise StorageConflict(str(exc.orig or exc)) from exc
        return False

    async def commit(self) -> None:
        """Commit the transaction."""
        try:
            await self.session.commit()
        except (IntegrityError, OperationalError) as e:
            await self.session.rollback()
            raise StorageConflict(str(e.orig or e)) from e

    async def flush(self) -> None:
        """Flush pending changes."""
        await self.session.flush()


UnitOfWorkFactory = Callable[[], UnitOfWork]


def unit_of_work_factory(
    session_maker: async_sessionmaker[AsyncSession],
) -> UnitOfWorkFactory:
    """Factory producing a fresh UnitOfWork per transaction."""

    def factory() -> UnitOfWork:
        return UnitOfWork(session_maker)

    return factory
