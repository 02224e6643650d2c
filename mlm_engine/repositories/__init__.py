"""
Repositories.

Data access layer over SQLAlchemy async sessions.
"""

from mlm_engine.repositories.base import BaseRepository
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
from mlm_engine.repositories.unit_of_work import UnitOfWork, UnitOfWorkFactory
from mlm_engine.repositories.volume_repository import VolumeRepository


__all__ = [
    "BaseRepository",
    "CommissionEventRepository",
    "EarningsCapRepository",
    "GracePeriodRepository",
    "LedgerRepository",
    "MemberRepository",
    "PayoutRepository",
    "PayoutSettingsRepository",
    "QualificationRepository",
    "UnitOfWork",
    "UnitOfWorkFactory",
    "VolumeRepository",
]
