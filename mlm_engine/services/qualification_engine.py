"""
Qualification engine.

Monthly rank evaluation. A member's computed rank is the highest rank whose
personal-volume AND direct-referral thresholds are both met.

- Promotion is applied immediately.
- A computed demotion opens a grace period; the member keeps the prior
  rank (and its rates) until the period ends. Each rank allows a limited
  number of grace periods; once they are used up the demotion applies
  immediately. Any demotion resets the counter.
- Re-qualifying while the grace period is open cancels the demotion.
- At expiry the latest computed rank is applied, either by the next monthly
  run or by apply_expired_demotions.

Records are append-only and keyed by (member, period): a re-run of a period
skips members that already have a record.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger

from mlm_engine.config.settings import settings
from mlm_engine.models.enums import GracePeriodStatus, Rank
from mlm_engine.models.rank_qualification import RankQualificationRecord
from mlm_engine.repositories.unit_of_work import UnitOfWork, UnitOfWorkFactory
from mlm_engine.services.commission_engine import MemberFailure
from mlm_engine.services.rate_table import CompensationPlanRegistry, RateTable
from mlm_engine.utils.datetime_utils import ensure_utc, utc_now, validate_period
from mlm_engine.utils.exceptions import MLMEngineError
from mlm_engine.utils.member_locks import MemberLockRegistry
from mlm_engine.utils.retry import retry_on_conflict


@dataclass
class QualificationReport:
    """Partial-success report of a monthly run."""

    period: str
    records: list[RankQualificationRecord] = field(default_factory=list)
    promotions: list[int] = field(default_factory=list)
    grace_opened: list[int] = field(default_factory=list)
    grace_cancelled: list[int] = field(default_factory=list)
    demotions_applied: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failures: list[MemberFailure] = field(default_factory=list)


@dataclass
class DemotionReport:
    """Result of apply_expired_demotions."""

    applied: list[int] = field(default_factory=list)
    failures: list[MemberFailure] = field(default_factory=list)


@dataclass
class _MemberOutcome:
    record: RankQualificationRecord | None = None
    promoted: bool = False
    grace_opened: bool = False
    grace_cancelled: bool = False
    demoted: bool = False


class QualificationEngine:
    """Monthly rank qualification with grace-period protection."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        registry: CompensationPlanRegistry,
        member_locks: MemberLockRegistry | None = None,
        grace_period_days: int | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.registry = registry
        self.member_locks = member_locks or MemberLockRegistry()
        self.grace_period = timedelta(
            days=grace_period_days
            if grace_period_days is not None
            else settings.grace_period_days
        )

    async def run_monthly_qualification(
        self, period: str, as_of: datetime | None = None
    ) -> QualificationReport:
        """
        Evaluate every member for a period.

        Args:
            period: YYYY-MM
            as_of: Evaluation moment (grace periods start/expire against it)

        Returns:
            QualificationReport; failures of single members do not abort
        """
        validate_period(period)
        as_of = ensure_utc(as_of) if as_of else utc_now()
        table = self.registry.current
        report = QualificationReport(period=period)

        async with self.uow_factory() as uow:
            member_ids = [m async for m in uow.members.iter_member_ids()]

        for member_id in member_ids:
            try:
                async with self.member_locks.hold(member_id):
                    outcome = await retry_on_conflict(
                        lambda: self._qualify_member(member_id, period, as_of, table),
                        attempts=settings.storage_retry_attempts,
                        base_delay=settings.storage_retry_base_delay,
                        description=f"qualify member {member_id}",
                    )
            except MLMEngineError as e:
                report.failures.append(MemberFailure(member_id=member_id, error=str(e)))
                logger.error(
                    f"Qualification of member {member_id} for {period} failed: {e}"
                )
                continue

            if outcome.record is None:
                report.skipped.append(member_id)
                continue
            report.records.append(outcome.record)
            if outcome.promoted:
                report.promotions.append(member_id)
            if outcome.grace_opened:
                report.grace_opened.append(member_id)
            if outcome.grace_cancelled:
                report.grace_cancelled.append(member_id)
            if outcome.demoted:
                report.demotions_applied.append(member_id)

        logger.success(
            f"Monthly qualification {period} complete: {len(report.records)} records, "
            f"{len(report.promotions)} promotions, {len(report.grace_opened)} grace opened, "
            f"{len(report.grace_cancelled)} cancelled, "
            f"{len(report.demotions_applied)} demotions, {len(report.failures)} failed",
            extra={"period": period, "skipped": len(report.skipped)},
        )
        return report

    async def apply_expired_demotions(
        self, as_of: datetime | None = None
    ) -> DemotionReport:
        """Apply every pending demotion whose grace period has ended."""
        as_of = ensure_utc(as_of) if as_of else utc_now()
        report = DemotionReport()

        async with self.uow_factory() as uow:
            member_ids = await uow.grace_periods.list_expired_member_ids(as_of)

        for member_id in member_ids:
            try:
                async with self.member_locks.hold(member_id):
                    applied = await retry_on_conflict(
                        lambda: self._apply_expired(member_id, as_of),
                        attempts=settings.storage_retry_attempts,
                        base_delay=settings.storage_retry_base_delay,
                        description=f"demote member {member_id}",
                    )
            except MLMEngineError as e:
                report.failures.append(MemberFailure(member_id=member_id, error=str(e)))
                logger.error(f"Demotion of member {member_id} failed: {e}")
                continue
            if applied:
                report.applied.append(member_id)

        if report.applied:
            logger.success(f"Applied {len(report.applied)} expired demotions")
        return report

    async def _qualify_member(
        self, member_id: int, period: str, as_of: datetime, table: RateTable
    ) -> _MemberOutcome:
        outcome = _MemberOutcome()
        async with self.uow_factory() as uow:
            if await uow.qualifications.get_record(member_id, period):
                return outcome

            member = await uow.members.get_member(member_id)
            if member is None:
                return outcome

            personal_volume = await uow.volumes.get_personal_volume(member_id, period)
            direct_referrals = await uow.members.count_active_direct_referrals(member_id)
            computed = table.qualify_rank(personal_volume, direct_referrals)
            previous = Rank(member.rank)
            pending = await uow.grace_periods.get_pending(member_id, for_update=True)

            achieved = previous
            demotion_pending = False

            if computed >= previous:
                if computed > previous:
                    await uow.members.update_rank(member_id, computed, as_of)
                    outcome.promoted = True
                    logger.info(
                        f"Member {member_id} promoted {previous} -> {computed}",
                        extra={"member_id": member_id, "period": period},
                    )
                if pending is not None:
                    pending.status = GracePeriodStatus.CANCELLED.value
                    pending.resolved_at = as_of
                    outcome.grace_cancelled = True
                    logger.info(
                        f"Member {member_id} re-qualified, pending demotion cancelled",
                        extra={"member_id": member_id, "period": period},
                    )
                achieved = computed
            elif pending is None and (
                member.grace_periods_used >= table.max_grace_periods(previous)
            ):
                # Protection exhausted: demote without a grace period
                await uow.members.update_rank(
                    member_id, computed, as_of, grace_periods_used=0
                )
                achieved = computed
                outcome.demoted = True
                logger.warning(
                    f"Member {member_id} demoted {previous} -> {computed}, "
                    f"no grace periods left",
                    extra={"member_id": member_id, "period": period},
                )
            elif pending is None:
                member.grace_periods_used += 1
                await uow.grace_periods.create(
                    member_id=member_id,
                    from_rank=previous.value,
                    target_rank=computed.value,
                    opened_period=period,
                    started_at=as_of,
                    ends_at=as_of + self.grace_period,
                    status=GracePeriodStatus.PENDING.value,
                )
                demotion_pending = True
                outcome.grace_opened = True
                logger.info(
                    f"Member {member_id} below {previous} thresholds, "
                    f"grace period opened (target {computed})",
                    extra={"member_id": member_id, "period": period},
                )
            elif ensure_utc(pending.ends_at) <= as_of:
                await self._demote(uow, member_id, pending, computed, as_of)
                achieved = computed
                outcome.demoted = True
            else:
                pending.target_rank = computed.value
                demotion_pending = True

            outcome.record = await uow.qualifications.create(
                member_id=member_id,
                period=period,
                personal_volume=personal_volume,
                direct_referrals=direct_referrals,
                previous_rank=previous.value,
                computed_rank=computed.value,
                rank_achieved=achieved.value,
                qualified=computed >= previous,
                demotion_pending=demotion_pending,
                created_at=as_of,
            )
            await uow.commit()
        return outcome

    async def _apply_expired(self, member_id: int, as_of: datetime) -> bool:
        async with self.uow_factory() as uow:
            pending = await uow.grace_periods.get_pending(member_id, for_update=True)
            if pending is None or ensure_utc(pending.ends_at) > as_of:
                return False
            await self._demote(uow, member_id, pending, Rank(pending.target_rank), as_of)
            await uow.commit()
            return True

    async def _demote(
        self,
        uow: UnitOfWork,
        member_id: int,
        pending,
        rank: Rank,
        as_of: datetime,
    ) -> None:
        await uow.members.update_rank(member_id, rank, as_of, grace_periods_used=0)
        pending.target_rank = rank.value
        pending.status = GracePeriodStatus.APPLIED.value
        pending.resolved_at = as_of
        logger.warning(
            f"Member {member_id} demoted {pending.from_rank} -> {rank} "
            f"after grace period",
            extra={"member_id": member_id},
        )
