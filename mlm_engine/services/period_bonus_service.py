"""
Period bonus passes.

Leadership and rank bonuses are paid once per member per period by batch
passes, not per event. Both go through the same cap-gated credit path as
event commissions, keyed by "{pass}:{period}" so a re-run of a period is a
no-op for members already paid.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger

from mlm_engine.models.commission_ledger_entry import CommissionLedgerEntry
from mlm_engine.models.enums import CommissionType, Rank
from mlm_engine.repositories.unit_of_work import UnitOfWorkFactory
from mlm_engine.services.commission_engine import (
    CapDenial,
    CommissionEngine,
    MemberFailure,
)
from mlm_engine.services.rate_table import CompensationPlanRegistry, RateTable
from mlm_engine.services.referral_graph import ReferralGraphStore
from mlm_engine.utils.datetime_utils import validate_period
from mlm_engine.utils.exceptions import MLMEngineError
from mlm_engine.utils.money import ZERO, quantize_money


@dataclass
class BatchReport:
    """Partial-success report of a bonus pass."""

    period: str
    commission_type: CommissionType
    entries: list[CommissionLedgerEntry] = field(default_factory=list)
    denials: list[CapDenial] = field(default_factory=list)
    failures: list[MemberFailure] = field(default_factory=list)
    already_paid: int = 0
    not_eligible: int = 0

    @property
    def total_credited(self) -> Decimal:
        return sum((e.amount for e in self.entries), ZERO)


class PeriodBonusService:
    """Leadership and rank bonus passes."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        registry: CompensationPlanRegistry,
        engine: CommissionEngine,
    ) -> None:
        self.uow_factory = uow_factory
        self.registry = registry
        self.engine = engine

    async def run_leadership_bonuses(self, period: str) -> BatchReport:
        """
        Pay leadership bonuses for a period.

        bonus = min(leadership_bonus_base(active downline) x rank multiplier,
                    leadership ceiling)
        """
        validate_period(period)
        table = self.registry.current
        report = BatchReport(period=period, commission_type=CommissionType.LEADERSHIP)
        event_id = f"{CommissionType.LEADERSHIP.value}:{period}"

        for member_id in await self._active_member_ids():
            try:
                amount, multiplier = await self._leadership_amount(member_id, table)
            except MLMEngineError as e:
                report.failures.append(
                    MemberFailure(
                        member_id=member_id,
                        error=str(e),
                        commission_type=CommissionType.LEADERSHIP,
                    )
                )
                logger.error(f"Leadership bonus for member {member_id} failed: {e}")
                continue

            if amount <= ZERO:
                report.not_eligible += 1
                continue

            await self._credit(
                report,
                member_id=member_id,
                event_id=event_id,
                amount=amount,
                rate=multiplier,
            )

        self._log_report(report)
        return report

    async def run_rank_bonuses(self, period: str) -> BatchReport:
        """Pay the flat rank bonus of each active member's rank for a period."""
        validate_period(period)
        table = self.registry.current
        report = BatchReport(period=period, commission_type=CommissionType.RANK_BONUS)
        event_id = f"{CommissionType.RANK_BONUS.value}:{period}"

        for member_id in await self._active_member_ids():
            async with self.uow_factory() as uow:
                member = await uow.members.get_member(member_id)
                rank = Rank(member.rank) if member is not None else None
            if rank is None:
                continue

            amount = quantize_money(table.rank_bonus(rank))
            if amount <= ZERO:
                report.not_eligible += 1
                continue

            await self._credit(
                report,
                member_id=member_id,
                event_id=event_id,
                amount=amount,
                rate=None,
            )

        self._log_report(report)
        return report

    async def _leadership_amount(
        self, member_id: int, table: RateTable
    ) -> tuple[Decimal, Decimal]:
        async with self.uow_factory() as uow:
            member = await uow.members.get_member(member_id)
            if member is None:
                return ZERO, ZERO
            rank = Rank(member.rank)
            graph = ReferralGraphStore(uow.members)
            team_size = await graph.count_active_downline(
                member_id, table.leadership_depth()
            )

        base = table.leadership_bonus_base(team_size)
        if base <= ZERO:
            return ZERO, ZERO
        multiplier = table.leadership_multiplier(rank)
        amount = min(base * multiplier, table.leadership_ceiling())
        return quantize_money(amount), multiplier

    async def _credit(
        self,
        report: BatchReport,
        *,
        member_id: int,
        event_id: str,
        amount: Decimal,
        rate: Decimal | None,
    ) -> None:
        try:
            outcome = await self.engine.credit(
                recipient_id=member_id,
                source_member_id=member_id,
                event_id=event_id,
                level=0,
                commission_type=report.commission_type,
                amount=amount,
                rate=rate,
                period=report.period,
            )
        except MLMEngineError as e:
            report.failures.append(
                MemberFailure(
                    member_id=member_id,
                    error=str(e),
                    commission_type=report.commission_type,
                )
            )
            logger.error(
                f"{report.commission_type} bonus for member {member_id} failed: {e}"
            )
            return

        if outcome.denial is not None:
            report.denials.append(
                CapDenial(
                    recipient_id=member_id,
                    commission_type=report.commission_type,
                    level=0,
                    reason=str(outcome.denial.reason),
                )
            )
        elif outcome.created:
            report.entries.append(outcome.entry)
        else:
            report.already_paid += 1

    async def _active_member_ids(self) -> list[int]:
        async with self.uow_factory() as uow:
            return [
                member_id
                async for member_id in uow.members.iter_member_ids(active_only=True)
            ]

    def _log_report(self, report: BatchReport) -> None:
        logger.success(
            f"{report.commission_type} pass for {report.period} complete: "
            f"{len(report.entries)} paid ({report.total_credited}), "
            f"{len(report.denials)} denied, {len(report.failures)} failed",
            extra={
                "period": report.period,
                "already_paid": report.already_paid,
                "not_eligible": report.not_eligible,
            },
        )
