"""
Tests for EarningsCapGuard state logic.

Tests cover:
- Evaluate in every state (open, warned, capped, unlimited, no plan)
- Clamping credits to the remaining headroom
- Warning and cap-reached transitions with single notification
- Rejection of credits past the cap
"""

from decimal import Decimal

import pytest

from mlm_engine.services.earnings_cap_guard import (
    CapNotification,
    CapNotificationKind,
    CapReason,
    CapTransition,
    EarningsCapGuard,
)
from mlm_engine.utils.exceptions import ValidationError


@pytest.fixture
def guard(registry, notifier):
    return EarningsCapGuard(registry, notifier=notifier, warning_percent=Decimal("90"))


class TestEvaluate:
    """Test can-earn decisions."""

    def test_open_state(self, guard, make_cap_state):
        decision = guard.evaluate(make_cap_state(earnings="1000"))

        assert decision.allowed is True
        assert decision.reason == CapReason.OPEN
        assert decision.remaining == Decimal("49000")

    def test_warned_state_still_allowed(self, guard, make_cap_state):
        decision = guard.evaluate(make_cap_state(earnings="46000"))

        assert decision.allowed is True
        assert decision.reason == CapReason.WARNED

    def test_capped_at_exact_limit(self, guard, make_cap_state):
        """Earnings equal to the cap deny further credit."""
        decision = guard.evaluate(make_cap_state(earnings="50000"))

        assert decision.allowed is False
        assert decision.reason == CapReason.CAPPED
        assert decision.remaining == Decimal("0")

    def test_unlimited_tier(self, guard, make_cap_state):
        decision = guard.evaluate(
            make_cap_state(earnings="999999999", cap_limit=None, tier="diamond_iii")
        )

        assert decision.allowed is True
        assert decision.reason == CapReason.UNLIMITED
        assert decision.remaining is None

    def test_no_plan_denied(self, guard, make_cap_state):
        decision = guard.evaluate(make_cap_state(cap_limit=None, tier=None))

        assert decision.allowed is False
        assert decision.reason == CapReason.NO_PLAN

    @pytest.mark.parametrize(
        "earnings,allowed",
        [("0", True), ("49999.99", True), ("50000", False), ("50000.01", False)],
    )
    def test_denied_iff_earnings_reach_cap(
        self, guard, make_cap_state, earnings, allowed
    ):
        assert guard.evaluate(make_cap_state(earnings=earnings)).allowed is allowed


class TestClamp:
    """Test truncation at the cap."""

    def test_amount_within_headroom(self, guard, make_cap_state):
        assert guard.clamp(make_cap_state(earnings="100"), Decimal("250.50")) == Decimal("250.50")

    def test_amount_truncated_to_headroom(self, guard, make_cap_state):
        """Bronze I at 40,000 can receive only 10,000 of a 12,000 credit."""
        state = make_cap_state(earnings="40000")

        assert guard.clamp(state, Decimal("12000")) == Decimal("10000.00")

    def test_capped_clamps_to_zero(self, guard, make_cap_state):
        assert guard.clamp(make_cap_state(earnings="50000"), Decimal("5")) == Decimal("0")

    def test_unlimited_not_clamped(self, guard, make_cap_state):
        state = make_cap_state(earnings="10", cap_limit=None, tier="diamond_iii")

        assert guard.clamp(state, Decimal("1000000")) == Decimal("1000000.00")


class TestApplyEarning:
    """Test state transitions on credit."""

    def test_open_stays_open(self, guard, make_cap_state):
        state = make_cap_state(earnings="0")

        transition = guard.apply_earning(state, Decimal("100"))

        assert state.current_plan_earnings == Decimal("100")
        assert transition.before == CapReason.OPEN
        assert transition.after == CapReason.OPEN
        assert transition.notifications == []

    def test_crossing_warning_threshold(self, guard, make_cap_state):
        state = make_cap_state(earnings="44000")

        transition = guard.apply_earning(state, Decimal("1000"))

        assert state.warned is True
        assert state.warning_sent is True
        assert transition.after == CapReason.WARNED
        assert [n.kind for n in transition.notifications] == [
            CapNotificationKind.CAP_WARNING
        ]

    def test_warning_sent_once(self, guard, make_cap_state):
        state = make_cap_state(earnings="45000", warned=True, warning_sent=True)

        transition = guard.apply_earning(state, Decimal("100"))

        assert transition.notifications == []

    def test_reaching_cap(self, guard, make_cap_state):
        """Landing exactly on the cap transitions to capped."""
        state = make_cap_state(earnings="40000")

        transition = guard.apply_earning(state, Decimal("10000"))

        assert state.capped is True
        assert transition.after == CapReason.CAPPED
        assert [n.kind for n in transition.notifications] == [
            CapNotificationKind.CAP_WARNING,
            CapNotificationKind.CAP_REACHED,
        ]

    def test_exceeding_cap_rejected(self, guard, make_cap_state):
        state = make_cap_state(earnings="49000")

        with pytest.raises(ValidationError):
            guard.apply_earning(state, Decimal("1001"))
        assert state.current_plan_earnings == Decimal("49000")

    def test_credit_while_capped_rejected(self, guard, make_cap_state):
        state = make_cap_state(earnings="50000", capped=True, warned=True)

        with pytest.raises(ValidationError):
            guard.apply_earning(state, Decimal("1"))

    def test_negative_amount_rejected(self, guard, make_cap_state):
        with pytest.raises(ValidationError):
            guard.apply_earning(make_cap_state(), Decimal("-1"))

    def test_unlimited_never_notifies(self, guard, make_cap_state):
        state = make_cap_state(earnings="0", cap_limit=None, tier="diamond_iii")

        transition = guard.apply_earning(state, Decimal("50000000"))

        assert transition.notifications == []
        assert state.capped is False


class TestDispatch:
    """Test notification delivery."""

    @pytest.mark.asyncio
    async def test_dispatch_delivers(self, guard, notifier, make_cap_state):
        state = make_cap_state(earnings="40000")
        transition = guard.apply_earning(state, Decimal("10000"))

        await guard.dispatch(transition)

        assert notifier.kinds_for(1) == ["CAP_WARNING", "CAP_REACHED"]

    @pytest.mark.asyncio
    async def test_dispatch_none(self, guard, notifier):
        await guard.dispatch(None)

        assert notifier.notifications == []

    @pytest.mark.asyncio
    async def test_notifier_failure_is_logged_not_raised(self, registry):
        class FailingNotifier:
            async def notify(self, notification):
                raise RuntimeError("channel down")

        guard = EarningsCapGuard(registry, notifier=FailingNotifier())
        transition = CapTransition(
            member_id=1,
            credited=Decimal("1"),
            before=CapReason.OPEN,
            after=CapReason.CAPPED,
            notifications=[
                CapNotification(
                    kind=CapNotificationKind.CAP_REACHED,
                    member_id=1,
                    current_plan_earnings=Decimal("50000"),
                    cap_limit=Decimal("50000"),
                )
            ],
        )

        await guard.dispatch(transition)
