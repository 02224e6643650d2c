"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from mlm_engine.models.base import Base
from mlm_engine.models.commission_event import CommissionEvent
from mlm_engine.models.commission_ledger_entry import (
    CommissionLedgerEntry,
    build_idempotency_key,
)
from mlm_engine.models.earnings_cap_state import EarningsCapState
from mlm_engine.models.enums import (
    RANK_ORDER,
    CommissionType,
    EventType,
    GracePeriodStatus,
    LedgerStatus,
    MembershipTier,
    PaymentMethod,
    PayoutStatus,
    Rank,
)
from mlm_engine.models.member import Member
from mlm_engine.models.member_volume import MemberVolume
from mlm_engine.models.payout import Payout
from mlm_engine.models.payout_settings import PayoutSettings
from mlm_engine.models.rank_grace_period import RankGracePeriod
from mlm_engine.models.rank_qualification import RankQualificationRecord


__all__ = [
    "Base",
    "CommissionEvent",
    "CommissionLedgerEntry",
    "CommissionType",
    "EarningsCapState",
    "EventType",
    "GracePeriodStatus",
    "LedgerStatus",
    "Member",
    "MemberVolume",
    "MembershipTier",
    "PaymentMethod",
    "Payout",
    "PayoutSettings",
    "PayoutStatus",
    "RANK_ORDER",
    "Rank",
    "RankGracePeriod",
    "RankQualificationRecord",
    "build_idempotency_key",
]
