"""
MLM engine service.

Entry point used by callers and job workers. Wires the rate table, cap
guard, commission engine, bonus passes, qualification engine and payout
batcher over one session factory, and wraps every batch operation in a
run-lock so a batch never runs concurrently with itself.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mlm_engine.config.compensation_plan import CompensationPlan
from mlm_engine.config.settings import settings
from mlm_engine.models.enums import MembershipTier, PaymentMethod
from mlm_engine.models.payout_settings import PayoutSettings
from mlm_engine.repositories.unit_of_work import unit_of_work_factory
from mlm_engine.services.commission_engine import (
    CommissionEngine,
    EventBatchResult,
    EventResult,
)
from mlm_engine.services.earnings_cap_guard import (
    CapNotifier,
    CapStatus,
    EarningsCapGuard,
)
from mlm_engine.services.payout_batcher import PayoutBatcher, PayoutReport
from mlm_engine.services.period_bonus_service import BatchReport, PeriodBonusService
from mlm_engine.services.qualification_engine import (
    DemotionReport,
    QualificationEngine,
    QualificationReport,
)
from mlm_engine.services.rate_table import CompensationPlanRegistry, RateTable
from mlm_engine.utils.distributed_lock import DistributedLock
from mlm_engine.utils.exceptions import ValidationError
from mlm_engine.utils.member_locks import MemberLockRegistry
from mlm_engine.utils.retry import retry_on_conflict
from mlm_engine.utils.validation import CommissionEventInput


class MLMEngineService:
    """
    Commission & qualification engine facade.

    Example:
        engine = MLMEngineService(session_maker)
        result = await engine.process_event(
            {"event_id": "task-42", "source_member_id": 7, "amount": "100"}
        )
    """

    LOCK_QUALIFICATION = "monthly_qualification"
    LOCK_PAYOUT = "payout_sweep"
    LOCK_LEADERSHIP = "leadership_bonuses"
    LOCK_RANK_BONUS = "rank_bonuses"
    LOCK_DEMOTIONS = "expired_demotions"

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        registry: CompensationPlanRegistry | None = None,
        notifier: CapNotifier | None = None,
        redis_client=None,
    ) -> None:
        self.uow_factory = unit_of_work_factory(session_maker)
        self.registry = registry or CompensationPlanRegistry.from_path(
            settings.compensation_plan_path
        )
        self.member_locks = MemberLockRegistry()
        self.run_lock = DistributedLock(redis_client=redis_client)

        self.cap_guard = EarningsCapGuard(self.registry, notifier=notifier)
        self.commissions = CommissionEngine(
            self.uow_factory,
            self.registry,
            self.cap_guard,
            member_locks=self.member_locks,
        )
        self.bonuses = PeriodBonusService(
            self.uow_factory, self.registry, self.commissions
        )
        self.qualification = QualificationEngine(
            self.uow_factory, self.registry, member_locks=self.member_locks
        )
        self.payouts = PayoutBatcher(self.uow_factory, member_locks=self.member_locks)

    # Events

    async def process_event(
        self, event: CommissionEventInput | dict[str, Any]
    ) -> EventResult:
        """Distribute commissions for one triggering event."""
        return await self.commissions.process_event(event)

    async def process_events(
        self, events: Iterable[CommissionEventInput | dict[str, Any]]
    ) -> EventBatchResult:
        """Distribute commissions for many events in parallel."""
        return await self.commissions.process_events(events)

    # Batches

    async def run_monthly_qualification(
        self, period: str, as_of: datetime | None = None
    ) -> QualificationReport:
        async with self.run_lock.lock(
            self.LOCK_QUALIFICATION, timeout=settings.batch_lock_timeout
        ):
            return await self.qualification.run_monthly_qualification(period, as_of)

    async def apply_expired_demotions(
        self, as_of: datetime | None = None
    ) -> DemotionReport:
        async with self.run_lock.lock(
            self.LOCK_DEMOTIONS, timeout=settings.batch_lock_timeout
        ):
            return await self.qualification.apply_expired_demotions(as_of)

    async def run_payout_sweep(
        self, period: str, as_of: datetime | None = None
    ) -> PayoutReport:
        async with self.run_lock.lock(
            self.LOCK_PAYOUT, timeout=settings.batch_lock_timeout
        ):
            return await self.payouts.run_payout_sweep(period, as_of)

    async def run_leadership_bonuses(self, period: str) -> BatchReport:
        async with self.run_lock.lock(
            self.LOCK_LEADERSHIP, timeout=settings.batch_lock_timeout
        ):
            return await self.bonuses.run_leadership_bonuses(period)

    async def run_rank_bonuses(self, period: str) -> BatchReport:
        async with self.run_lock.lock(
            self.LOCK_RANK_BONUS, timeout=settings.batch_lock_timeout
        ):
            return await self.bonuses.run_rank_bonuses(period)

    # Members

    async def get_cap_status(self, member_id: int) -> CapStatus:
        """Read-only earnings cap status of a member."""
        async with self.uow_factory() as uow:
            status = await self.cap_guard.get_status(uow, member_id)
            await uow.commit()
        return status

    async def upgrade_membership_tier(
        self, member_id: int, tier: MembershipTier | str
    ) -> CapStatus:
        """
        Apply a tier purchase: set the tier and reset the earnings cap.

        Raises:
            ValidationError: Unknown member or tier not in the active plan
        """
        try:
            tier = MembershipTier(tier)
        except ValueError as e:
            raise ValidationError(f"Unknown membership tier {tier!r}") from e
        if not self.registry.current.has_tier(tier):
            raise ValidationError(f"Membership tier {tier} is not in the active plan")

        async def apply() -> None:
            async with self.uow_factory() as uow:
                member = await uow.members.update_tier(member_id, tier)
                if member is None:
                    raise ValidationError(f"Member {member_id} not found")
                await self.cap_guard.reset_for_tier(uow, member_id, tier)
                await uow.commit()

        async with self.member_locks.hold(member_id):
            await retry_on_conflict(
                apply,
                attempts=settings.storage_retry_attempts,
                base_delay=settings.storage_retry_base_delay,
                description=f"upgrade tier of member {member_id}",
            )

        logger.info(
            f"Member {member_id} upgraded to {tier}",
            extra={"member_id": member_id, "tier": tier.value},
        )
        return await self.get_cap_status(member_id)

    async def set_payout_settings(
        self,
        member_id: int,
        minimum_threshold: Decimal | None = None,
        payment_method: PaymentMethod | str | None = None,
        auto_payout: bool | None = None,
    ) -> PayoutSettings:
        return await self.payouts.set_payout_settings(
            member_id,
            minimum_threshold=minimum_threshold,
            payment_method=payment_method,
            auto_payout=auto_payout,
        )

    # Plan

    def reload_plan(self, plan: CompensationPlan) -> RateTable:
        """Hot-swap the compensation plan; in-flight operations keep their table."""
        return self.registry.reload(plan)
