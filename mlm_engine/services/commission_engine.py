"""
Commission engine.

Turns one triggering event into ledger entries:

1. Resolve the upline of the source member (depth of the source's tier).
2. Walk it nearest first; stop at the first level the recipient's tier
   has no rate for.
3. Gate every recipient through the earnings cap guard; a denial skips the
   recipient and is recorded, it never aborts the distribution.
4. Credit amount = trigger amount x rate, rounded down to cents and clamped
   to the remaining cap headroom. The rate is the tier's level rate scaled
   by the recipient's rank, so a rank held through a grace period keeps
   its rates.
5. Matching pass: the sponsor of the level-1 recipient receives the level-1
   commission times the matching multiplier of their rank.
6. Every entry is keyed by (event_id, recipient, type); re-processing an
   event is a no-op for entries that already exist.

Each credit (ledger insert + cap increment) is one transaction, executed
under the recipient's member lock and retried on StorageConflict.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from loguru import logger

from mlm_engine.config.settings import settings
from mlm_engine.models.commission_ledger_entry import (
    CommissionLedgerEntry,
    build_idempotency_key,
)
from mlm_engine.models.enums import CommissionType, LedgerStatus
from mlm_engine.repositories.unit_of_work import UnitOfWorkFactory
from mlm_engine.services.earnings_cap_guard import (
    CapDecision,
    CapTransition,
    EarningsCapGuard,
)
from mlm_engine.services.rate_table import CompensationPlanRegistry
from mlm_engine.services.referral_graph import ReferralGraphStore
from mlm_engine.utils.exceptions import (
    GraphIntegrityError,
    MLMEngineError,
    StorageConflict,
    ValidationError,
)
from mlm_engine.utils.member_locks import MemberLockRegistry
from mlm_engine.utils.money import ZERO, quantize_money
from mlm_engine.utils.retry import retry_on_conflict
from mlm_engine.utils.validation import CommissionEventInput, validate_event


@dataclass(frozen=True)
class CapDenial:
    """Recipient skipped by the earnings cap guard."""

    recipient_id: int
    commission_type: CommissionType
    level: int
    reason: str


@dataclass(frozen=True)
class MemberFailure:
    """Processing failure isolated to one member."""

    member_id: int
    error: str
    commission_type: CommissionType | None = None


@dataclass
class CreditOutcome:
    """Result of one credit attempt."""

    entry: CommissionLedgerEntry | None = None
    created: bool = False
    denial: CapDecision | None = None


@dataclass
class EventResult:
    """Outcome of process_event."""

    event_id: str
    entries: list[CommissionLedgerEntry] = field(default_factory=list)
    existing: list[CommissionLedgerEntry] = field(default_factory=list)
    denials: list[CapDenial] = field(default_factory=list)
    failures: list[MemberFailure] = field(default_factory=list)
    duplicate: bool = False

    @property
    def total_credited(self) -> Decimal:
        return sum((e.amount for e in self.entries), ZERO)


@dataclass
class EventBatchResult:
    """Outcome of process_events."""

    results: list[EventResult] = field(default_factory=list)
    # event_id -> error message for events rejected or aborted
    errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class _Recipient:
    member_id: int
    level: int
    membership_tier: str | None
    rank: str


class CommissionEngine:
    """Processes triggering events into commission ledger entries."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        registry: CompensationPlanRegistry,
        cap_guard: EarningsCapGuard,
        member_locks: MemberLockRegistry | None = None,
        worker_limit: int | None = None,
        retry_attempts: int | None = None,
        retry_base_delay: float | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.registry = registry
        self.cap_guard = cap_guard
        self.member_locks = member_locks or MemberLockRegistry()
        self.worker_limit = worker_limit or settings.commission_worker_limit
        self.retry_attempts = retry_attempts or settings.storage_retry_attempts
        self.retry_base_delay = (
            retry_base_delay
            if retry_base_delay is not None
            else settings.storage_retry_base_delay
        )

    async def process_event(
        self, event: CommissionEventInput | dict[str, Any]
    ) -> EventResult:
        """
        Distribute commissions for one triggering event.

        Args:
            event: Event with event_id, source_member_id and amount

        Returns:
            EventResult with created entries, denials and per-member failures

        Raises:
            ValidationError: Malformed event (not retried)
            GraphIntegrityError: Corrupt referral graph (event aborted)
        """
        event = validate_event(event)
        table = self.registry.current
        result = EventResult(event_id=event.event_id)

        amount, period, result.duplicate = await retry_on_conflict(
            lambda: self._accept_event(event),
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            description=f"accept event {event.event_id}",
        )

        try:
            chain, matching_recipient = await self._resolve_recipients(
                event.source_member_id, table
            )
        except GraphIntegrityError as e:
            logger.error(
                f"Event {event.event_id} aborted, referral graph needs repair: {e}",
                extra={
                    "event_id": event.event_id,
                    "member_id": e.member_id,
                },
            )
            raise

        level_one_amount: Decimal | None = None

        for recipient in chain:
            rate = table.level_rate(
                recipient.membership_tier, recipient.level, recipient.rank
            )
            if rate is None:
                # Configured depth exhausted: no deeper level commission
                break

            raw_amount = quantize_money(amount * rate / Decimal("100"))
            if raw_amount <= ZERO:
                continue

            outcome = await self._credit_collecting(
                result,
                recipient_id=recipient.member_id,
                source_member_id=event.source_member_id,
                event_id=event.event_id,
                level=recipient.level,
                commission_type=CommissionType.LEVEL,
                amount=raw_amount,
                rate=rate,
                period=period,
            )
            if recipient.level == 1 and outcome and outcome.entry is not None:
                level_one_amount = outcome.entry.amount

        if level_one_amount is not None and matching_recipient is not None:
            multiplier = table.matching_multiplier(matching_recipient.rank)
            if multiplier:
                matching_amount = quantize_money(level_one_amount * multiplier)
                if matching_amount > ZERO:
                    await self._credit_collecting(
                        result,
                        recipient_id=matching_recipient.member_id,
                        source_member_id=event.source_member_id,
                        event_id=event.event_id,
                        level=matching_recipient.level,
                        commission_type=CommissionType.MATCHING,
                        amount=matching_amount,
                        rate=multiplier,
                        period=period,
                    )

        logger.info(
            f"Event {event.event_id} processed: {len(result.entries)} created, "
            f"{len(result.existing)} existing, {len(result.denials)} denied, "
            f"{len(result.failures)} failed",
            extra={
                "event_id": event.event_id,
                "source_member_id": event.source_member_id,
                "total_credited": str(result.total_credited),
                "plan_version": table.version,
            },
        )
        return result

    async def process_events(
        self, events: Iterable[CommissionEventInput | dict[str, Any]]
    ) -> EventBatchResult:
        """
        Process many events concurrently, bounded by the worker limit.

        A rejected, aborted or crashed event is reported in `errors` and
        does not affect the others.
        """
        semaphore = asyncio.Semaphore(self.worker_limit)
        batch = EventBatchResult()

        async def run_one(index: int, payload) -> EventResult | None:
            async with semaphore:
                try:
                    return await self.process_event(payload)
                except MLMEngineError as e:
                    key = _event_key(payload, index)
                    batch.errors[key] = str(e)
                    logger.warning(f"Event {key} not processed: {e}")
                    return None
                except Exception as e:
                    key = _event_key(payload, index)
                    batch.errors[key] = f"{type(e).__name__}: {e}"
                    logger.exception(f"Unexpected error processing event {key}")
                    return None

        results = await asyncio.gather(
            *(run_one(i, payload) for i, payload in enumerate(events))
        )
        batch.results = [r for r in results if r is not None]
        return batch

    async def credit(
        self,
        *,
        recipient_id: int,
        source_member_id: int | None,
        event_id: str,
        level: int,
        commission_type: CommissionType,
        amount: Decimal,
        rate: Decimal | None,
        period: str,
    ) -> CreditOutcome:
        """
        Credit one recipient atomically (ledger entry + cap increment).

        Runs under the recipient's member lock; retried on StorageConflict.

        Raises:
            StorageConflict: If every attempt conflicted
        """
        key = build_idempotency_key(event_id, recipient_id, commission_type.value)

        async def attempt() -> tuple[CreditOutcome, CapTransition | None]:
            async with self.uow_factory() as uow:
                existing = await uow.ledger.get_by_key(key)
                if existing is not None:
                    return CreditOutcome(entry=existing, created=False), None

                state = await self.cap_guard.load_state(
                    uow, recipient_id, for_update=True
                )
                decision = self.cap_guard.evaluate(state)
                credited = self.cap_guard.clamp(state, amount)
                if not decision.allowed or credited <= ZERO:
                    await uow.commit()
                    return CreditOutcome(denial=decision), None

                entry, created = await uow.ledger.create_entry_if_absent(
                    key,
                    recipient_id=recipient_id,
                    source_member_id=source_member_id,
                    event_id=event_id,
                    level=level,
                    commission_type=commission_type.value,
                    amount=credited,
                    rate=rate,
                    status=LedgerStatus.PENDING.value,
                    period=period,
                    cap_epoch=state.cap_epoch,
                )
                if not created:
                    # Another worker committed the key while we waited for
                    # the cap-state lock; its credit already counted.
                    return CreditOutcome(entry=entry, created=False), None
                transition = self.cap_guard.apply_earning(state, credited)
                await uow.commit()
                return CreditOutcome(entry=entry, created=created), transition

        async with self.member_locks.hold(recipient_id):
            outcome, transition = await retry_on_conflict(
                attempt,
                attempts=self.retry_attempts,
                base_delay=self.retry_base_delay,
                description=f"credit {key}",
            )

        await self.cap_guard.dispatch(transition)

        if outcome.created and outcome.entry.amount < amount:
            logger.info(
                f"Commission {key} truncated at earnings cap: "
                f"{amount} -> {outcome.entry.amount}",
                extra={"recipient_id": recipient_id, "event_id": event_id},
            )
        return outcome

    async def _credit_collecting(
        self, result: EventResult, **credit_args: Any
    ) -> CreditOutcome | None:
        """Credit one recipient, recording the outcome into result."""
        recipient_id = credit_args["recipient_id"]
        commission_type = credit_args["commission_type"]
        try:
            outcome = await self.credit(**credit_args)
        except (StorageConflict, ValidationError) as e:
            result.failures.append(
                MemberFailure(
                    member_id=recipient_id,
                    error=str(e),
                    commission_type=commission_type,
                )
            )
            logger.error(
                f"Commission for member {recipient_id} failed: {e}",
                extra={"event_id": result.event_id, "member_id": recipient_id},
            )
            return None

        if outcome.denial is not None:
            result.denials.append(
                CapDenial(
                    recipient_id=recipient_id,
                    commission_type=commission_type,
                    level=credit_args["level"],
                    reason=str(outcome.denial.reason),
                )
            )
        elif outcome.created:
            result.entries.append(outcome.entry)
        else:
            result.existing.append(outcome.entry)
        return outcome

    async def _accept_event(
        self, event: CommissionEventInput
    ) -> tuple[Decimal, str, bool]:
        """
        Record the event and credit the source member's personal volume once.

        Returns:
            (amount, period, duplicate) taken from the stored event
        """
        async with self.uow_factory() as uow:
            stored = await uow.events.get_by_event_id(event.event_id)
            if stored is not None:
                logger.info(
                    f"Event {event.event_id} redelivered, resuming distribution",
                    extra={"event_id": event.event_id},
                )
                return stored.amount, stored.period, True

            source = await uow.members.get_member(event.source_member_id)
            if source is None:
                raise ValidationError(
                    f"Unknown source member {event.source_member_id}"
                )

            period = event.period
            await uow.events.create(
                event_id=event.event_id,
                source_member_id=event.source_member_id,
                amount=event.amount,
                event_type=event.event_type.value,
                period=period,
            )
            await uow.volumes.add_volume(
                event.source_member_id, period, event.amount
            )
            await uow.commit()
            return event.amount, period, False

    async def _resolve_recipients(
        self, source_member_id: int, table
    ) -> tuple[list[_Recipient], _Recipient | None]:
        """Upline chain for the level walk plus the matching recipient."""
        async with self.uow_factory() as uow:
            graph = ReferralGraphStore(uow.members)
            source = await uow.members.get_member(source_member_id)
            if source is None:
                raise GraphIntegrityError(source_member_id, "member not found")

            depth = table.max_depth(source.membership_tier)
            chain = await graph.upline_chain(source_member_id, depth)
            recipients = [
                _Recipient(
                    member_id=node.member.id,
                    level=node.level,
                    membership_tier=node.member.membership_tier,
                    rank=node.member.rank,
                )
                for node in chain
            ]

            matching = None
            if chain:
                sponsor = await uow.members.get_sponsor(chain[0].member.id)
                if sponsor is not None:
                    matching = _Recipient(
                        member_id=sponsor.id,
                        level=2,
                        membership_tier=sponsor.membership_tier,
                        rank=sponsor.rank,
                    )
            return recipients, matching


def _event_key(payload, index: int) -> str:
    if isinstance(payload, CommissionEventInput):
        return payload.event_id
    if isinstance(payload, dict) and payload.get("event_id"):
        return str(payload["event_id"])
    return f"#{index}"
