"""
Payout batcher.

Periodic sweep: matures pending ledger entries past the holding window,
then turns each member's matured unpaid balance into one payout once it
reaches the member's minimum threshold. Below-threshold balances carry
forward untouched; there are no partial payouts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from loguru import logger

from mlm_engine.config.settings import settings
from mlm_engine.models.enums import PaymentMethod, PayoutStatus
from mlm_engine.models.payout import Payout
from mlm_engine.models.payout_settings import PayoutSettings
from mlm_engine.repositories.unit_of_work import UnitOfWorkFactory
from mlm_engine.services.commission_engine import MemberFailure
from mlm_engine.utils.datetime_utils import ensure_utc, utc_now, validate_period
from mlm_engine.utils.exceptions import (
    MLMEngineError,
    StorageConflict,
    ValidationError,
)
from mlm_engine.utils.member_locks import MemberLockRegistry
from mlm_engine.utils.money import ZERO, round_fee
from mlm_engine.utils.retry import retry_on_conflict
from mlm_engine.utils.validation import validate_amount


# Flat fee, percentage fee
PROCESSING_FEES: dict[PaymentMethod, tuple[Decimal, Decimal]] = {
    PaymentMethod.BANK_TRANSFER: (Decimal("2.50"), Decimal("0")),
    PaymentMethod.PAYPAL: (Decimal("0.30"), Decimal("0.029")),
    PaymentMethod.CRYPTO: (Decimal("0"), Decimal("0.01")),
    PaymentMethod.CHECK: (Decimal("5.00"), Decimal("0")),
}


def calculate_processing_fee(amount: Decimal, method: PaymentMethod | str) -> Decimal:
    """
    Processing fee of a payout, rounded half-up to cents.

    Never exceeds the payout amount.
    """
    flat, percent = PROCESSING_FEES.get(PaymentMethod(method), (ZERO, ZERO))
    fee = round_fee(flat + amount * percent)
    return min(fee, amount)


@dataclass
class PayoutReport:
    """Partial-success report of a payout sweep."""

    period: str
    matured: int = 0
    payouts: list[Payout] = field(default_factory=list)
    # member_id -> balance left for the next run
    carried_forward: dict[int, Decimal] = field(default_factory=dict)
    auto_payout_disabled: list[int] = field(default_factory=list)
    failures: list[MemberFailure] = field(default_factory=list)

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payouts), ZERO)


@dataclass
class _Resolved:
    threshold: Decimal
    method: PaymentMethod
    auto_payout: bool


class PayoutBatcher:
    """Matures ledger entries and batches payouts."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        member_locks: MemberLockRegistry | None = None,
        maturity_days: int | None = None,
        default_threshold: Decimal | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.member_locks = member_locks or MemberLockRegistry()
        self.maturity = timedelta(
            days=maturity_days if maturity_days is not None else settings.maturity_days
        )
        self.default_threshold = (
            default_threshold
            if default_threshold is not None
            else settings.default_payout_threshold
        )

    async def run_payout_sweep(
        self, period: str, as_of: datetime | None = None
    ) -> PayoutReport:
        """
        Run one payout sweep.

        Args:
            period: YYYY-MM label of the payouts created
            as_of: Sweep moment; entries created at or before
                as_of - maturity window mature

        Returns:
            PayoutReport
        """
        validate_period(period)
        as_of = ensure_utc(as_of) if as_of else utc_now()
        report = PayoutReport(period=period)

        async with self.uow_factory() as uow:
            report.matured = await uow.ledger.mature_pending(
                cutoff=as_of - self.maturity, matured_at=as_of
            )
            await uow.commit()
            member_ids = await uow.ledger.list_recipients_with_matured()

        for member_id in member_ids:
            try:
                async with self.member_locks.hold(member_id):
                    await retry_on_conflict(
                        lambda: self._sweep_member(member_id, period, as_of, report),
                        attempts=settings.storage_retry_attempts,
                        base_delay=settings.storage_retry_base_delay,
                        description=f"payout member {member_id}",
                    )
            except MLMEngineError as e:
                report.failures.append(MemberFailure(member_id=member_id, error=str(e)))
                logger.error(f"Payout for member {member_id} failed: {e}")

        logger.success(
            f"Payout sweep {period} complete: {len(report.payouts)} payouts "
            f"({report.total_paid}), {len(report.carried_forward)} carried forward, "
            f"{len(report.failures)} failed",
            extra={"period": period, "matured": report.matured},
        )
        return report

    async def set_payout_settings(
        self,
        member_id: int,
        minimum_threshold: Decimal | None = None,
        payment_method: PaymentMethod | str | None = None,
        auto_payout: bool | None = None,
    ) -> PayoutSettings:
        """
        Create or update a member's payout settings.

        Raises:
            ValidationError: Unknown member, non-positive threshold or
                unsupported method
        """
        data = {}
        if minimum_threshold is not None:
            data["minimum_threshold"] = validate_amount(minimum_threshold)
        if payment_method is not None:
            try:
                data["payment_method"] = PaymentMethod(payment_method).value
            except ValueError as e:
                raise ValidationError(
                    f"Unsupported payment method {payment_method!r}"
                ) from e
        if auto_payout is not None:
            data["auto_payout"] = bool(auto_payout)

        async with self.uow_factory() as uow:
            if await uow.members.get_member(member_id) is None:
                raise ValidationError(f"Member {member_id} not found")
            existing = await uow.payout_settings.get_for_member(member_id)
            if existing is None:
                data.setdefault("minimum_threshold", self.default_threshold)
                data.setdefault("payment_method", PaymentMethod.BANK_TRANSFER.value)
                data.setdefault("auto_payout", True)
            row = await uow.payout_settings.upsert(member_id, **data)
            await uow.commit()

        logger.info(
            f"Payout settings updated for member {member_id}",
            extra={"member_id": member_id, "fields": sorted(data)},
        )
        return row

    async def _sweep_member(
        self, member_id: int, period: str, as_of: datetime, report: PayoutReport
    ) -> None:
        async with self.uow_factory() as uow:
            resolved = self._resolve(
                await uow.payout_settings.get_for_member(member_id)
            )
            if not resolved.auto_payout:
                report.auto_payout_disabled.append(member_id)
                return

            balance = await uow.ledger.sum_unpaid_matured(member_id, as_of)
            if balance <= ZERO:
                return
            if balance < resolved.threshold:
                report.carried_forward[member_id] = balance
                return

            entries = await uow.ledger.list_unpaid_matured(
                member_id, as_of, for_update=True
            )
            total = sum((e.amount for e in entries), ZERO)
            if total < resolved.threshold:
                report.carried_forward[member_id] = total
                return

            fee = calculate_processing_fee(total, resolved.method)
            payout = await uow.payouts.create(
                member_id=member_id,
                amount=total,
                processing_fee=fee,
                net_amount=total - fee,
                status=PayoutStatus.PENDING.value,
                method=resolved.method.value,
                period=period,
                entry_count=len(entries),
                requested_at=as_of,
            )
            marked = await uow.ledger.mark_paid(
                [e.id for e in entries], payout.id, as_of
            )
            if marked != len(entries):
                raise StorageConflict(
                    f"Ledger of member {member_id} changed during payout "
                    f"({marked}/{len(entries)} entries marked)"
                )
            await uow.commit()

        report.payouts.append(payout)
        logger.info(
            f"Payout {payout.id} created for member {member_id}: "
            f"{total} via {resolved.method} (fee {fee})",
            extra={"member_id": member_id, "period": period, "entries": len(entries)},
        )

    def _resolve(self, row: PayoutSettings | None) -> _Resolved:
        if row is None:
            return _Resolved(
                threshold=self.default_threshold,
                method=PaymentMethod.BANK_TRANSFER,
                auto_payout=True,
            )
        return _Resolved(
            threshold=row.minimum_threshold,
            method=PaymentMethod(row.payment_method),
            auto_payout=row.auto_payout,
        )
