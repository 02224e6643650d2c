"""
Earnings cap guard.

Tracks cumulative in-plan earnings of each member against the cap of their
membership tier:

    open -> warned (>= 90 % of cap) -> capped (>= 100 % of cap)

`capped` is terminal until the member purchases a new tier, which resets
the state to `open` against the new cap and starts a new cap epoch.
The top tier has no cap (unlimited sentinel). All arithmetic is Decimal.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Protocol

from loguru import logger

from mlm_engine.config.settings import settings
from mlm_engine.models.earnings_cap_state import EarningsCapState
from mlm_engine.models.enums import MembershipTier
from mlm_engine.repositories.unit_of_work import UnitOfWork
from mlm_engine.services.rate_table import CompensationPlanRegistry
from mlm_engine.utils.datetime_utils import utc_now
from mlm_engine.utils.exceptions import ValidationError
from mlm_engine.utils.money import ZERO, quantize_money


class CapReason(StrEnum):
    """Outcome of a cap check."""

    OPEN = "open"
    WARNED = "warned"
    CAPPED = "capped"
    UNLIMITED = "unlimited"
    NO_PLAN = "no_plan"


class CapNotificationKind(StrEnum):
    CAP_WARNING = "CAP_WARNING"
    CAP_REACHED = "CAP_REACHED"


@dataclass(frozen=True)
class CapDecision:
    """Result of can_earn / evaluate."""

    allowed: bool
    reason: CapReason
    # None when unlimited
    remaining: Decimal | None = None


@dataclass(frozen=True)
class CapNotification:
    kind: CapNotificationKind
    member_id: int
    current_plan_earnings: Decimal
    cap_limit: Decimal | None


@dataclass
class CapTransition:
    """Effect of one apply_earning call."""

    member_id: int
    credited: Decimal
    before: CapReason
    after: CapReason
    notifications: list[CapNotification] = field(default_factory=list)


@dataclass(frozen=True)
class CapStatus:
    """Read-only cap status for display."""

    member_id: int
    membership_tier: str | None
    current_plan_earnings: Decimal
    cap_limit: Decimal | None
    remaining: Decimal | None
    percentage: Decimal | None
    state: CapReason
    warning_sent: bool
    cap_epoch: int


class CapNotifier(Protocol):
    """Receives cap notifications after the crediting transaction commits."""

    async def notify(self, notification: CapNotification) -> None: ...


class LoggingCapNotifier:
    """Default notifier: writes notifications to the log."""

    async def notify(self, notification: CapNotification) -> None:
        logger.warning(
            f"{notification.kind}: member {notification.member_id} "
            f"earned {notification.current_plan_earnings} of cap {notification.cap_limit}",
            extra={
                "member_id": notification.member_id,
                "kind": str(notification.kind),
            },
        )


class EarningsCapGuard:
    """
    Gate for every credited commission.

    The pure methods (evaluate, clamp, apply_earning) work on a loaded
    EarningsCapState. The async methods load the state through a unit of
    work; callers that mutate must hold the member lock and load the state
    with for_update=True inside the same transaction.
    """

    def __init__(
        self,
        registry: CompensationPlanRegistry,
        notifier: CapNotifier | None = None,
        warning_percent: Decimal | None = None,
    ) -> None:
        self.registry = registry
        self.notifier = notifier or LoggingCapNotifier()
        self.warning_percent = Decimal(
            warning_percent if warning_percent is not None
            else settings.cap_warning_percent
        )

    # ------------------------------------------------------------------
    # Pure state logic
    # ------------------------------------------------------------------

    def state_of(self, state: EarningsCapState) -> CapReason:
        """Current state name."""
        if state.membership_tier is None:
            return CapReason.NO_PLAN
        if state.cap_limit is None:
            return CapReason.UNLIMITED
        if state.capped or state.current_plan_earnings >= state.cap_limit:
            return CapReason.CAPPED
        if state.warned or self._reached_warning(state):
            return CapReason.WARNED
        return CapReason.OPEN

    def evaluate(self, state: EarningsCapState) -> CapDecision:
        """
        Decide whether the member may earn.

        Denied iff current_plan_earnings >= cap_limit; the unlimited tier is
        always allowed. A member without a membership tier has no plan and
        is denied.
        """
        reason = self.state_of(state)
        if reason == CapReason.NO_PLAN:
            return CapDecision(allowed=False, reason=reason, remaining=ZERO)
        if reason == CapReason.UNLIMITED:
            return CapDecision(allowed=True, reason=reason, remaining=None)
        remaining = max(state.cap_limit - state.current_plan_earnings, ZERO)
        if reason == CapReason.CAPPED:
            return CapDecision(allowed=False, reason=reason, remaining=ZERO)
        return CapDecision(allowed=True, reason=reason, remaining=remaining)

    def clamp(self, state: EarningsCapState, amount: Decimal) -> Decimal:
        """
        Amount that may actually be credited.

        Excess over the remaining headroom is dropped, so a member lands
        exactly on the cap. Returns zero when denied.
        """
        decision = self.evaluate(state)
        if not decision.allowed:
            return ZERO
        amount = quantize_money(amount)
        if decision.remaining is None:
            return amount
        return min(amount, quantize_money(decision.remaining))

    def apply_earning(
        self, state: EarningsCapState, amount: Decimal
    ) -> CapTransition:
        """
        Increment earnings and run the state transitions.

        The caller must have clamped amount; crediting past the cap is a bug.

        Raises:
            ValidationError: If amount is negative or exceeds the headroom
        """
        if amount < 0:
            raise ValidationError(f"Cannot record negative earning {amount}")

        before = self.state_of(state)
        if before in (CapReason.CAPPED, CapReason.NO_PLAN) and amount > 0:
            raise ValidationError(
                f"Member {state.member_id} cannot earn in state {before}"
            )
        if (
            state.cap_limit is not None
            and state.current_plan_earnings + amount > state.cap_limit
        ):
            raise ValidationError(
                f"Earning {amount} exceeds cap headroom of member {state.member_id}"
            )

        state.current_plan_earnings = state.current_plan_earnings + amount
        transition = CapTransition(
            member_id=state.member_id,
            credited=amount,
            before=before,
            after=before,
        )

        if state.cap_limit is None:
            return transition

        if not state.warned and self._reached_warning(state):
            state.warned = True
            if not state.warning_sent:
                state.warning_sent = True
                transition.notifications.append(
                    self._notification(CapNotificationKind.CAP_WARNING, state)
                )

        if not state.capped and state.current_plan_earnings >= state.cap_limit:
            state.capped = True
            state.warned = True
            transition.notifications.append(
                self._notification(CapNotificationKind.CAP_REACHED, state)
            )

        transition.after = self.state_of(state)
        if transition.after != before:
            logger.info(
                f"Earnings cap state of member {state.member_id}: "
                f"{before} -> {transition.after}",
                extra={
                    "member_id": state.member_id,
                    "earnings": str(state.current_plan_earnings),
                    "cap_limit": str(state.cap_limit),
                },
            )
        return transition

    async def dispatch(self, transition: CapTransition | None) -> None:
        """Send notifications of a committed transition."""
        if transition is None:
            return
        for notification in transition.notifications:
            try:
                await self.notifier.notify(notification)
            except Exception as e:
                logger.error(
                    f"Failed to deliver {notification.kind} for member "
                    f"{notification.member_id}: {e}"
                )

    # ------------------------------------------------------------------
    # Persistent operations
    # ------------------------------------------------------------------

    async def load_state(
        self, uow: UnitOfWork, member_id: int, for_update: bool = False
    ) -> EarningsCapState:
        """
        Load the cap state of a member, creating it on first use.

        A member whose tier differs from the tier of the stored state has
        bought a new plan; the state is reset against the new cap.

        Raises:
            ValidationError: If the member does not exist
        """
        member = await uow.members.get_member(member_id)
        if member is None:
            raise ValidationError(f"Member {member_id} not found")

        state = await uow.caps.get_for_member(member_id, for_update=for_update)
        if state is None:
            state = await uow.caps.create_for_member(
                member_id=member_id,
                membership_tier=member.membership_tier,
                cap_limit=self._cap_limit_for(member.membership_tier),
            )
            if for_update:
                state = await uow.caps.get_for_member(member_id, for_update=True)
            return state

        if member.membership_tier != state.membership_tier:
            self._reset(state, member.membership_tier)
            await uow.flush()
        return state

    async def can_earn(self, uow: UnitOfWork, member_id: int) -> CapDecision:
        """Check whether a member may earn right now."""
        state = await self.load_state(uow, member_id)
        return self.evaluate(state)

    async def record_earning(
        self, uow: UnitOfWork, member_id: int, amount: Decimal
    ) -> CapTransition:
        """
        Credit earnings to a member (clamped to the remaining headroom).

        Runs inside the caller's transaction; the caller commits and then
        dispatches the returned transition.
        """
        state = await self.load_state(uow, member_id, for_update=True)
        credited = self.clamp(state, amount)
        transition = self.apply_earning(state, credited)
        await uow.flush()
        return transition

    async def get_status(self, uow: UnitOfWork, member_id: int) -> CapStatus:
        """Read-only snapshot of a member's cap state."""
        state = await self.load_state(uow, member_id)
        decision = self.evaluate(state)
        percentage = None
        if state.cap_limit:
            percentage = (
                state.current_plan_earnings / state.cap_limit * Decimal("100")
            ).quantize(Decimal("0.01"))
        return CapStatus(
            member_id=member_id,
            membership_tier=state.membership_tier,
            current_plan_earnings=state.current_plan_earnings,
            cap_limit=state.cap_limit,
            remaining=decision.remaining,
            percentage=percentage,
            state=decision.reason,
            warning_sent=state.warning_sent,
            cap_epoch=state.cap_epoch,
        )

    async def reset_for_tier(
        self, uow: UnitOfWork, member_id: int, tier: MembershipTier
    ) -> EarningsCapState:
        """Reset the cap state after a tier purchase (new cap epoch)."""
        state = await uow.caps.get_for_member(member_id, for_update=True)
        if state is None:
            state = await uow.caps.create_for_member(
                member_id=member_id,
                membership_tier=MembershipTier(tier).value,
                cap_limit=self._cap_limit_for(tier),
            )
            return state
        self._reset(state, MembershipTier(tier).value)
        await uow.flush()
        return state

    def _reset(self, state: EarningsCapState, tier: str | None) -> None:
        previous_epoch = state.cap_epoch
        state.membership_tier = tier
        state.cap_limit = self._cap_limit_for(tier)
        state.current_plan_earnings = ZERO
        state.warned = False
        state.capped = False
        state.warning_sent = False
        state.cap_epoch = previous_epoch + 1
        state.reset_at = utc_now()
        logger.info(
            f"Earnings cap of member {state.member_id} reset for tier {tier}",
            extra={"member_id": state.member_id, "cap_epoch": state.cap_epoch},
        )

    def _cap_limit_for(self, tier: str | None) -> Decimal | None:
        if tier is None:
            return None
        table = self.registry.current
        if not table.has_tier(tier):
            raise ValidationError(f"Membership tier {tier!r} is not configured")
        return table.cap_limit(tier)

    def _reached_warning(self, state: EarningsCapState) -> bool:
        if state.cap_limit is None:
            return False
        threshold = state.cap_limit * self.warning_percent / Decimal("100")
        return state.current_plan_earnings >= threshold

    def _notification(
        self, kind: CapNotificationKind, state: EarningsCapState
    ) -> CapNotification:
        return CapNotification(
            kind=kind,
            member_id=state.member_id,
            current_plan_earnings=state.current_plan_earnings,
            cap_limit=state.cap_limit,
        )
