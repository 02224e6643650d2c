"""
Integration tests for the commission engine.

Tests cover:
- Level walk with rate exhaustion and depth bound
- Matching bonus from the level-1 commission
- Earnings cap truncation and denial
- Level rates scaled by recipient rank, including grace periods
- Idempotent re-processing (no duplicate entries, volume counted once)
- Referral graph corruption and malformed events
- Failure isolation and concurrent processing
"""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from mlm_engine.models import (
    CommissionEvent,
    EarningsCapState,
    MembershipTier,
    MemberVolume,
    Rank,
)
from mlm_engine.models.enums import CommissionType
from mlm_engine.repositories.ledger_repository import LedgerRepository
from mlm_engine.services.commission_engine import CommissionEngine
from mlm_engine.services.earnings_cap_guard import EarningsCapGuard
from mlm_engine.utils.exceptions import (
    GraphIntegrityError,
    StorageConflict,
    ValidationError,
)


AS_OF = datetime(2026, 9, 30, 12, 0, tzinfo=UTC)


def _event(event_id: str, source_id: int, amount: str) -> dict:
    return {"event_id": event_id, "source_member_id": source_id, "amount": amount}


class TestLevelDistribution:
    """Test the level walk."""

    @pytest.mark.asyncio
    async def test_bronze_rates_exhausted_after_four_levels(
        self, service, build_chain, fetch_ledger
    ):
        """A 1000 event pays 50/30/20/10 and nothing at level 5."""
        chain = await build_chain(ancestors=6)

        result = await service.process_event(_event("evt-1", chain[0], "1000"))

        level_entries = [
            e for e in result.entries if e.commission_type == CommissionType.LEVEL
        ]
        assert [(e.recipient_id, e.level, e.amount) for e in level_entries] == [
            (chain[1], 1, Decimal("50.00")),
            (chain[2], 2, Decimal("30.00")),
            (chain[3], 3, Decimal("20.00")),
            (chain[4], 4, Decimal("10.00")),
        ]
        assert await fetch_ledger(recipient_id=chain[5]) == []
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_depth_bounded_by_source_tier(self, service, build_chain):
        """Silver recipients above a bronze source stop at four levels."""
        chain = await build_chain(
            ancestors=6,
            tier=MembershipTier.SILVER_I,
            source_tier=MembershipTier.BRONZE_I,
        )

        result = await service.process_event(_event("evt-depth", chain[0], "1000"))

        levels = {
            e.level: e.amount
            for e in result.entries
            if e.commission_type == CommissionType.LEVEL
        }
        assert levels == {
            1: Decimal("60.00"),
            2: Decimal("40.00"),
            3: Decimal("30.00"),
            4: Decimal("20.00"),
        }

    @pytest.mark.asyncio
    async def test_walk_stops_at_first_ineligible_level(
        self, service, add_member, fetch_ledger
    ):
        """A recipient without a tier ends the walk; higher levels get nothing."""
        top = await add_member(tier=MembershipTier.BRONZE_I)
        no_plan = await add_member(sponsor_id=top, tier=None)
        level_one = await add_member(sponsor_id=no_plan)
        source = await add_member(sponsor_id=level_one)

        result = await service.process_event(_event("evt-stop", source, "1000"))

        assert [e.recipient_id for e in result.entries] == [level_one]
        assert await fetch_ledger(recipient_id=top) == []
        # Matching recipient has no plan and is denied
        assert [(d.recipient_id, d.reason) for d in result.denials] == [
            (no_plan, "no_plan")
        ]

    @pytest.mark.asyncio
    async def test_root_member_event_creates_nothing(self, service, add_member):
        root = await add_member()

        result = await service.process_event(_event("evt-root", root, "1000"))

        assert result.entries == []
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_sub_cent_amount_skipped(self, service, build_chain):
        """Amounts rounding down to zero are not credited."""
        chain = await build_chain(ancestors=4)

        result = await service.process_event(_event("evt-tiny", chain[0], "0.10"))

        # 5 % of 0.10 = 0.005 -> 0.00
        assert result.entries == []


class TestMatchingBonus:
    """Test matching bonus."""

    @pytest.mark.asyncio
    async def test_silver_sponsor_receives_twenty_percent(
        self, service, add_member
    ):
        """Level-1 commission 100 x 0.20 silver multiplier = 20."""
        sponsor = await add_member(rank=Rank.SILVER)
        level_one = await add_member(sponsor_id=sponsor)
        source = await add_member(sponsor_id=level_one)

        result = await service.process_event(_event("evt-match", source, "2000"))

        matching = [
            e for e in result.entries if e.commission_type == CommissionType.MATCHING
        ]
        assert len(matching) == 1
        assert matching[0].recipient_id == sponsor
        assert matching[0].amount == Decimal("20.00")
        assert matching[0].rate == Decimal("0.2")

    @pytest.mark.asyncio
    async def test_no_matching_without_level_one_commission(
        self, service, add_member
    ):
        sponsor = await add_member(rank=Rank.GOLD)
        level_one = await add_member(sponsor_id=sponsor, tier=None)
        source = await add_member(sponsor_id=level_one)

        result = await service.process_event(_event("evt-nomatch", source, "2000"))

        assert result.entries == []


class TestRankScaledRates:
    """Test level rates scaled by the recipient's rank."""

    @pytest.mark.asyncio
    async def test_rank_scales_level_commission(self, service, add_member):
        """Same tier, same event: Gold earns 1.5x what Bronze earns."""
        gold = await add_member(rank=Rank.GOLD)
        bronze = await add_member()
        gold_source = await add_member(sponsor_id=gold)
        bronze_source = await add_member(sponsor_id=bronze)

        gold_result = await service.process_event(
            _event("evt-rank-gold", gold_source, "1000")
        )
        bronze_result = await service.process_event(
            _event("evt-rank-bronze", bronze_source, "1000")
        )

        assert gold_result.entries[0].amount == Decimal("75.00")
        assert gold_result.entries[0].rate == Decimal("7.5")
        assert bronze_result.entries[0].amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_demotion_lowers_later_level_commissions(
        self, service, add_member, fetch_member
    ):
        """Grace period keeps Gold rates; the applied demotion drops them."""
        sponsor = await add_member(rank=Rank.GOLD)
        source = await add_member(sponsor_id=sponsor)

        before = await service.process_event(_event("evt-gold-1", source, "1000"))
        await service.run_monthly_qualification("2026-09", as_of=AS_OF)
        during = await service.process_event(_event("evt-gold-2", source, "1000"))
        await service.apply_expired_demotions(as_of=AS_OF + timedelta(days=31))
        after = await service.process_event(_event("evt-gold-3", source, "1000"))

        assert (await fetch_member(sponsor)).rank == Rank.BRONZE
        assert [r.entries[0].amount for r in (before, during, after)] == [
            Decimal("75.00"),
            Decimal("75.00"),
            Decimal("50.00"),
        ]

    @pytest.mark.asyncio
    async def test_grace_period_keeps_matching_multiplier(
        self, service, add_member, fetch_member
    ):
        """A Silver sponsor inside a grace period still matches at 0.20."""
        sponsor = await add_member(rank=Rank.SILVER)
        level_one = await add_member(sponsor_id=sponsor)
        source = await add_member(sponsor_id=level_one)

        report = await service.run_monthly_qualification("2026-09", as_of=AS_OF)
        assert report.grace_opened == [sponsor]

        result = await service.process_event(_event("evt-grace", source, "2000"))

        assert (await fetch_member(sponsor)).rank == Rank.SILVER
        by_type = {
            (e.recipient_id, str(e.commission_type)): e.amount for e in result.entries
        }
        assert by_type == {
            (level_one, "level"): Decimal("100.00"),
            # 3 % x 1.2 of 2000
            (sponsor, "level"): Decimal("72.00"),
            (sponsor, "matching"): Decimal("20.00"),
        }


class TestEarningsCap:
    """Test cap gating during distribution."""

    @pytest.mark.asyncio
    async def test_credit_truncated_at_cap(
        self, service, build_chain, seed_cap_state, notifier, fetch_all
    ):
        """Bronze I at 40,000 receives 10,000 of a 12,000 commission."""
        chain = await build_chain(ancestors=2)
        await seed_cap_state(chain[1], earnings="40000")

        result = await service.process_event(_event("evt-cap", chain[0], "240000"))

        level_one = next(e for e in result.entries if e.level == 1)
        assert level_one.amount == Decimal("10000.00")
        states = await fetch_all(EarningsCapState, member_id=chain[1])
        assert states[0].current_plan_earnings == Decimal("50000")
        assert states[0].capped is True
        assert notifier.kinds_for(chain[1]) == ["CAP_WARNING", "CAP_REACHED"]

    @pytest.mark.asyncio
    async def test_capped_recipient_denied_others_paid(
        self, service, build_chain, seed_cap_state
    ):
        chain = await build_chain(ancestors=2)
        await seed_cap_state(chain[1], earnings="50000")

        result = await service.process_event(_event("evt-denied", chain[0], "1000"))

        assert [(d.recipient_id, d.reason) for d in result.denials] == [
            (chain[1], "capped")
        ]
        assert [e.recipient_id for e in result.entries] == [chain[2]]
        # No matching without a level-1 commission
        assert all(
            e.commission_type == CommissionType.LEVEL for e in result.entries
        )

    @pytest.mark.asyncio
    async def test_credited_sum_matches_cap_increments(
        self, service, build_chain, fetch_ledger, fetch_all
    ):
        chain = await build_chain(ancestors=4)

        for n in range(3):
            await service.process_event(_event(f"evt-sum-{n}", chain[0], "777.77"))

        for member_id in chain[1:]:
            entries = await fetch_ledger(recipient_id=member_id)
            state = (await fetch_all(EarningsCapState, member_id=member_id))[0]
            assert sum(e.amount for e in entries) == state.current_plan_earnings


class TestIdempotency:
    """Test re-processing of the same event."""

    @pytest.mark.asyncio
    async def test_reprocess_creates_no_duplicates(
        self, service, build_chain, fetch_ledger, fetch_all
    ):
        chain = await build_chain(ancestors=4)
        event = _event("evt-dup", chain[0], "1000")

        first = await service.process_event(event)
        second = await service.process_event(event)

        assert len(first.entries) == 5
        assert second.duplicate is True
        assert second.entries == []
        assert len(second.existing) == 5
        assert len(await fetch_ledger(event_id="evt-dup")) == 5

        volumes = await fetch_all(MemberVolume, member_id=chain[0])
        assert volumes[0].personal_volume == Decimal("1000")
        assert len(await fetch_all(CommissionEvent, event_id="evt-dup")) == 1

    @pytest.mark.asyncio
    async def test_redelivery_uses_stored_amount(self, service, build_chain):
        chain = await build_chain(ancestors=1)
        await service.process_event(_event("evt-amt", chain[0], "1000"))

        again = await service.process_event(_event("evt-amt", chain[0], "5000"))

        assert again.existing[0].amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_redelivery_with_matching_bonus(
        self, service, add_member, fetch_all
    ):
        """Redelivery returns the stored level and matching entries untouched."""
        sponsor = await add_member(rank=Rank.SILVER)
        level_one = await add_member(sponsor_id=sponsor)
        source = await add_member(sponsor_id=level_one)
        event = _event("evt-redeliver", source, "2000")

        first = await service.process_event(event)
        second = await service.process_event(event)

        def summary(entries):
            return sorted(
                (e.recipient_id, str(e.commission_type), e.amount) for e in entries
            )

        assert second.entries == []
        assert second.failures == []
        assert summary(second.existing) == summary(first.entries)
        assert (sponsor, "matching", Decimal("20.00")) in summary(second.existing)
        state = (await fetch_all(EarningsCapState, member_id=sponsor))[0]
        # Level 2 (72.00) + matching (20.00), counted once
        assert state.current_plan_earnings == Decimal("92.00")

    @pytest.mark.asyncio
    async def test_entry_committed_while_waiting_not_counted_twice(
        self, service, build_chain, monkeypatch, fetch_all
    ):
        """
        A key committed by another worker between the first lookup and the
        insert is returned as existing without touching the cap.
        """
        chain = await build_chain(ancestors=1)
        await service.process_event(_event("evt-race", chain[0], "1000"))

        original = LedgerRepository.get_by_key
        calls = {"n": 0}

        async def late_lookup(self, idempotency_key):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return await original(self, idempotency_key)

        monkeypatch.setattr(LedgerRepository, "get_by_key", late_lookup)

        outcome = await service.commissions.credit(
            recipient_id=chain[1],
            source_member_id=chain[0],
            event_id="evt-race",
            level=1,
            commission_type=CommissionType.LEVEL,
            amount=Decimal("50.00"),
            rate=Decimal("5"),
            period="2026-10",
        )

        assert outcome.created is False
        assert outcome.entry.amount == Decimal("50.00")
        state = (await fetch_all(EarningsCapState, member_id=chain[1]))[0]
        assert state.current_plan_earnings == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_process_events_batch_with_duplicate(
        self, service, build_chain, fetch_ledger
    ):
        chain = await build_chain(ancestors=1)
        event = _event("evt-batch", chain[0], "100")
        service.commissions.worker_limit = 1

        batch = await service.process_events([event, event])

        assert batch.errors == {}
        assert len(await fetch_ledger(event_id="evt-batch")) == 1


class TestRejection:
    """Test malformed events and corrupt graphs."""

    @pytest.mark.asyncio
    async def test_unknown_source_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.process_event(_event("evt-unknown", 9999, "100"))

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, service, add_member):
        member = await add_member()

        with pytest.raises(ValidationError):
            await service.process_event(_event("evt-neg", member, "-1"))

    @pytest.mark.asyncio
    async def test_cycle_aborts_event(
        self, service, add_member, session_maker, fetch_ledger
    ):
        from mlm_engine.models import Member

        first = await add_member()
        second = await add_member(sponsor_id=first)
        async with session_maker() as session:
            member = await session.get(Member, first)
            member.sponsor_id = second
            await session.commit()

        with pytest.raises(GraphIntegrityError):
            await service.process_event(_event("evt-cycle", second, "100"))
        assert await fetch_ledger(event_id="evt-cycle") == []

    @pytest.mark.asyncio
    async def test_dangling_sponsor_aborts_event(self, service, add_member):
        orphan = await add_member(sponsor_id=4242)

        with pytest.raises(GraphIntegrityError) as exc_info:
            await service.process_event(_event("evt-dangling", orphan, "100"))
        assert exc_info.value.member_id == orphan

    @pytest.mark.asyncio
    async def test_batch_reports_rejected_events(self, service, build_chain):
        chain = await build_chain(ancestors=1)
        service.commissions.worker_limit = 1

        batch = await service.process_events(
            [
                _event("evt-ok", chain[0], "100"),
                _event("evt-bad", 9999, "100"),
            ]
        )

        assert [r.event_id for r in batch.results] == ["evt-ok"]
        assert "evt-bad" in batch.errors

    @pytest.mark.asyncio
    async def test_batch_records_unexpected_error(
        self, service, build_chain, monkeypatch, fetch_ledger
    ):
        """An unexpected exception is reported for its event only."""
        chain = await build_chain(ancestors=1)
        service.commissions.worker_limit = 1
        original = service.commissions.process_event

        async def crashing(payload):
            if payload["event_id"] == "evt-crash":
                raise RuntimeError("connection reset")
            return await original(payload)

        monkeypatch.setattr(service.commissions, "process_event", crashing)

        batch = await service.process_events(
            [
                _event("evt-crash", chain[0], "100"),
                _event("evt-after-crash", chain[0], "100"),
            ]
        )

        assert [r.event_id for r in batch.results] == ["evt-after-crash"]
        assert batch.errors == {"evt-crash": "RuntimeError: connection reset"}
        assert len(await fetch_ledger(event_id="evt-after-crash")) == 1



class TestFailureIsolation:
    """Test per-member failure isolation."""

    @pytest.mark.asyncio
    async def test_failing_recipient_does_not_block_others(
        self, service, build_chain, monkeypatch, fetch_ledger
    ):
        chain = await build_chain(ancestors=4)
        failing = chain[3]
        original = service.cap_guard.load_state

        async def flaky_load_state(uow, member_id, for_update=False):
            if member_id == failing:
                raise StorageConflict("could not serialize access")
            return await original(uow, member_id, for_update=for_update)

        monkeypatch.setattr(service.cap_guard, "load_state", flaky_load_state)

        result = await service.process_event(_event("evt-iso", chain[0], "1000"))

        assert [f.member_id for f in result.failures] == [failing]
        assert sorted(e.recipient_id for e in result.entries) == sorted(
            [chain[1], chain[2], chain[2], chain[4]]
        )

        monkeypatch.undo()
        retry = await service.process_event(_event("evt-iso", chain[0], "1000"))

        assert [e.recipient_id for e in retry.entries] == [failing]
        assert len(retry.existing) == 4
        assert len(await fetch_ledger(event_id="evt-iso")) == 5


class TestConcurrency:
    """Test concurrent distribution."""

    @pytest.mark.asyncio
    async def test_concurrent_events_keep_ledger_consistent(
        self, uow_factory, registry, notifier, add_member, fetch_ledger, fetch_all
    ):
        engine = CommissionEngine(
            uow_factory,
            registry,
            EarningsCapGuard(registry, notifier=notifier),
            worker_limit=8,
            retry_attempts=10,
            retry_base_delay=0.01,
        )
        top = await add_member()
        middle = await add_member(sponsor_id=top)
        sources = [await add_member(sponsor_id=middle) for _ in range(10)]
        events = [_event(f"evt-c{n}", s, "100") for n, s in enumerate(sources)]

        await engine.process_events(events)
        # Re-deliver everything; only missing entries are created
        for _ in range(3):
            batch = await engine.process_events(events)
            if not batch.errors and not any(r.failures for r in batch.results):
                break
            await asyncio.sleep(0.05)

        entries = await fetch_ledger()
        keys = [e.idempotency_key for e in entries]
        assert len(keys) == len(set(keys))
        # Per event: level 1 (5.00), level 2 (3.00), matching (0.50)
        assert len(entries) == 30

        for member_id, expected in ((middle, "50.00"), (top, "35.00")):
            member_entries = [e for e in entries if e.recipient_id == member_id]
            state = (await fetch_all(EarningsCapState, member_id=member_id))[0]
            assert sum(e.amount for e in member_entries) == Decimal(expected)
            assert state.current_plan_earnings == Decimal(expected)
