"""
Rate table.

Read-only lookups over a CompensationPlan. Absence from the table is a
valid answer (None = not eligible), never an error.
"""

import threading
from decimal import Decimal

from loguru import logger

from mlm_engine.config.compensation_plan import (
    DEFAULT_PLAN,
    CompensationPlan,
    load_plan_file,
)
from mlm_engine.models.enums import RANK_ORDER, MembershipTier, Rank


class RateTable:
    """Immutable view over one compensation plan version."""

    def __init__(self, plan: CompensationPlan) -> None:
        self.plan = plan
        self.version = plan.version
        self._tiers = {t.tier: t for t in plan.tiers}
        self._ranks = {r.rank: r for r in plan.ranks}
        self._overall_max_depth = max(
            (t.max_depth for t in plan.tiers), default=0
        )

    def level_rate(
        self,
        tier: MembershipTier | str | None,
        level: int,
        rank: Rank | str | None = None,
    ) -> Decimal | None:
        """
        Commission percent for a recipient at an upline level.

        Args:
            tier: Recipient membership tier (selects the level rates)
            level: Distance from the source member, 1 = direct sponsor
            rank: Recipient rank; its level-rate multiplier scales the rate

        Returns:
            Percent (e.g. Decimal("5") for 5 %), or None if not eligible
        """
        tier_plan = self._tier_plan(tier)
        if tier_plan is None or level < 1 or level > tier_plan.max_depth:
            return None
        return tier_plan.level_rates[level - 1] * self.level_rate_multiplier(rank)

    def level_rate_multiplier(self, rank: Rank | str | None) -> Decimal:
        """Level-rate multiplier of a rank (1 when no rank is given)."""
        rank_plan = self._rank_plan(rank)
        return rank_plan.level_rate_multiplier if rank_plan else Decimal("1")

    def max_grace_periods(self, rank: Rank | str | None) -> int:
        """Grace periods a member holding this rank may open."""
        rank_plan = self._rank_plan(rank)
        return rank_plan.max_grace_periods if rank_plan else 0

    def max_depth(self, tier: MembershipTier | str | None) -> int:
        """Configured level depth of a tier (overall maximum when unknown)."""
        tier_plan = self._tier_plan(tier)
        if tier_plan is None:
            return self._overall_max_depth
        return tier_plan.max_depth

    def cap_limit(self, tier: MembershipTier | str | None) -> Decimal | None:
        """
        Earnings cap of a tier: price x cap_percentage / 100.

        Returns:
            Cap amount, or None for the unlimited tier
        """
        tier_plan = self._tier_plan(tier)
        if tier_plan is None:
            raise KeyError(f"Membership tier {tier!r} is not configured")
        if tier_plan.cap_percentage is None:
            return None
        return tier_plan.price * tier_plan.cap_percentage / Decimal("100")

    def has_tier(self, tier: MembershipTier | str | None) -> bool:
        return self._tier_plan(tier) is not None

    def matching_multiplier(self, rank: Rank | str | None) -> Decimal | None:
        """Matching bonus multiplier of a rank (None = no matching)."""
        rank_plan = self._rank_plan(rank)
        return rank_plan.matching_multiplier if rank_plan else None

    def leadership_multiplier(self, rank: Rank | str | None) -> Decimal:
        rank_plan = self._rank_plan(rank)
        return rank_plan.leadership_multiplier if rank_plan else Decimal("0")

    def leadership_bonus_base(self, active_team_size: int) -> Decimal:
        """min(team size x per-member rate, base cap); zero below minimum team."""
        leadership = self.plan.leadership
        if active_team_size < leadership.min_team_size:
            return Decimal("0")
        return min(
            Decimal(active_team_size) * leadership.per_member_rate,
            leadership.base_cap,
        )

    def leadership_ceiling(self) -> Decimal:
        return self.plan.leadership.ceiling

    def leadership_depth(self) -> int:
        return self.plan.leadership.max_depth

    def rank_bonus(self, rank: Rank | str | None) -> Decimal:
        """Flat period bonus of a rank."""
        rank_plan = self._rank_plan(rank)
        return rank_plan.rank_bonus if rank_plan else Decimal("0")

    def qualify_rank(
        self, personal_volume: Decimal, direct_referrals: int
    ) -> Rank:
        """
        Highest rank whose thresholds are both met.

        Falls back to the lowest rank when nothing qualifies.
        """
        achieved = RANK_ORDER[0]
        for rank in RANK_ORDER:
            rank_plan = self._ranks.get(rank)
            if rank_plan is None:
                continue
            if (
                personal_volume >= rank_plan.min_personal_volume
                and direct_referrals >= rank_plan.min_direct_referrals
            ):
                achieved = rank
        return achieved

    def _tier_plan(self, tier):
        if tier is None:
            return None
        try:
            return self._tiers.get(MembershipTier(tier))
        except ValueError:
            return None

    def _rank_plan(self, rank):
        if rank is None:
            return None
        try:
            return self._ranks.get(Rank(rank))
        except ValueError:
            return None


class CompensationPlanRegistry:
    """
    Holds the active rate table.

    Engines read `current` once per operation, so a reload never changes
    rates in the middle of an event or of one member's batch step.
    """

    def __init__(self, plan: CompensationPlan | None = None) -> None:
        self._lock = threading.Lock()
        self._current = RateTable(plan or DEFAULT_PLAN)

    @property
    def current(self) -> RateTable:
        """Active rate table."""
        return self._current

    def reload(self, plan: CompensationPlan) -> RateTable:
        """Atomically replace the active rate table."""
        table = RateTable(plan)
        with self._lock:
            previous = self._current.version
            self._current = table
        logger.warning(
            f"Compensation plan reloaded: v{previous} -> v{plan.version}"
        )
        return table

    @classmethod
    def from_path(cls, plan_path: str | None = None) -> "CompensationPlanRegistry":
        """Build registry from a JSON plan file, or the default plan."""
        if plan_path:
            return cls(load_plan_file(plan_path))
        return cls(DEFAULT_PLAN)
