"""
Compensation plan configuration.

Single source of truth for membership tiers, level rates, earnings caps,
rank multipliers and qualification thresholds. The plan is data: it can be
loaded from a JSON file and hot-swapped at runtime without
code changes.
"""

import json
from decimal import Decimal
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, model_validator

from mlm_engine.models.enums import MembershipTier, Rank


class TierPlan(BaseModel):
    """Membership tier: price, earnings cap and level rates."""

    tier: MembershipTier
    display_name: str
    price: Decimal = Field(gt=0)
    # None = unlimited earnings (no cap)
    cap_percentage: Decimal | None = Field(default=None, gt=0)
    # Percent per level, index 0 = level 1
    level_rates: list[Decimal] = Field(min_length=1)

    @property
    def max_depth(self) -> int:
        return len(self.level_rates)


class RankPlan(BaseModel):
    """Rank multipliers, flat bonus, qualification thresholds and demotion protection."""

    rank: Rank
    # Scales every level rate of a recipient holding this rank
    level_rate_multiplier: Decimal = Field(default=Decimal("1"), gt=0)
    matching_multiplier: Decimal | None = Field(default=None, ge=0)
    leadership_multiplier: Decimal = Field(default=Decimal("0"), ge=0)
    rank_bonus: Decimal = Field(default=Decimal("0"), ge=0)
    min_direct_referrals: int = Field(default=0, ge=0)
    min_personal_volume: Decimal = Field(default=Decimal("0"), ge=0)
    # Grace periods a member may open while holding this rank
    max_grace_periods: int = Field(default=0, ge=0)


class LeadershipPlan(BaseModel):
    """Leadership bonus pass parameters."""

    min_team_size: int = Field(default=5, ge=1)
    per_member_rate: Decimal = Field(default=Decimal("10"), ge=0)
    base_cap: Decimal = Field(default=Decimal("500"), ge=0)
    ceiling: Decimal = Field(default=Decimal("1500"), ge=0)
    max_depth: int = Field(default=10, ge=1)


class CompensationPlan(BaseModel):
    """Versioned compensation plan."""

    version: int = Field(default=1, ge=1)
    tiers: list[TierPlan]
    ranks: list[RankPlan]
    leadership: LeadershipPlan = Field(default_factory=LeadershipPlan)

    @model_validator(mode="after")
    def validate_plan(self) -> "CompensationPlan":
        """Reject duplicate tiers/ranks and non-monotonic thresholds."""
        tier_keys = [t.tier for t in self.tiers]
        if len(set(tier_keys)) != len(tier_keys):
            raise ValueError("Duplicate membership tier in compensation plan")

        rank_keys = [r.rank for r in self.ranks]
        if len(set(rank_keys)) != len(rank_keys):
            raise ValueError("Duplicate rank in compensation plan")

        ordered = sorted(self.ranks, key=lambda r: r.rank.order)
        for lower, higher in zip(ordered, ordered[1:]):
            if (
                higher.min_direct_referrals < lower.min_direct_referrals
                or higher.min_personal_volume < lower.min_personal_volume
            ):
                raise ValueError(
                    f"Qualification thresholds for {higher.rank} "
                    f"are below those of {lower.rank}"
                )
        return self


def _tier(
    tier: MembershipTier,
    display_name: str,
    price: str,
    cap_percentage: str | None,
    rates: list[str],
) -> TierPlan:
    return TierPlan(
        tier=tier,
        display_name=display_name,
        price=Decimal(price),
        cap_percentage=Decimal(cap_percentage) if cap_percentage else None,
        level_rates=[Decimal(r) for r in rates],
    )


BRONZE_RATES = ["5", "3", "2", "1"]
SILVER_RATES = ["6", "4", "3", "2", "1"]
UPPER_RATES = ["7", "5", "4", "3", "2", "1"]

DEFAULT_PLAN = CompensationPlan(
    version=1,
    tiers=[
        _tier(MembershipTier.BRONZE_I, "Bronze I", "25000", "200", BRONZE_RATES),
        _tier(MembershipTier.BRONZE_II, "Bronze II", "62500", "200", BRONZE_RATES),
        _tier(MembershipTier.BRONZE_III, "Bronze III", "125000", "200", BRONZE_RATES),
        _tier(MembershipTier.SILVER_I, "Silver I", "250000", "250", SILVER_RATES),
        _tier(MembershipTier.SILVER_II, "Silver II", "500000", "250", SILVER_RATES),
        _tier(MembershipTier.SILVER_III, "Silver III", "1000000", "250", SILVER_RATES),
        _tier(MembershipTier.GOLD_I, "Gold I", "1875000", "300", UPPER_RATES),
        _tier(MembershipTier.GOLD_II, "Gold II", "3750000", "300", UPPER_RATES),
        _tier(MembershipTier.GOLD_III, "Gold III", "7500000", "300", UPPER_RATES),
        _tier(MembershipTier.PLATINUM_I, "Platinum I", "12500000", "350", UPPER_RATES),
        _tier(MembershipTier.PLATINUM_II, "Platinum II", "25000000", "350", UPPER_RATES),
        _tier(MembershipTier.PLATINUM_III, "Platinum III", "50000000", "350", UPPER_RATES),
        _tier(MembershipTier.DIAMOND_I, "Diamond I", "87500000", "400", UPPER_RATES),
        _tier(MembershipTier.DIAMOND_II, "Diamond II", "175000000", "400", UPPER_RATES),
        # Top tier: unlimited earnings
        _tier(MembershipTier.DIAMOND_III, "Diamond III", "375000000", None, UPPER_RATES),
    ],
    ranks=[
        RankPlan(
            rank=Rank.BRONZE,
            level_rate_multiplier=Decimal("1.0"),
            matching_multiplier=Decimal("0.10"),
            leadership_multiplier=Decimal("0.5"),
            rank_bonus=Decimal("0"),
            min_direct_referrals=0,
            min_personal_volume=Decimal("0"),
            max_grace_periods=0,
        ),
        RankPlan(
            rank=Rank.SILVER,
            level_rate_multiplier=Decimal("1.2"),
            matching_multiplier=Decimal("0.20"),
            leadership_multiplier=Decimal("1.0"),
            rank_bonus=Decimal("50"),
            min_direct_referrals=3,
            min_personal_volume=Decimal("500"),
            max_grace_periods=1,
        ),
        RankPlan(
            rank=Rank.GOLD,
            level_rate_multiplier=Decimal("1.5"),
            matching_multiplier=Decimal("0.30"),
            leadership_multiplier=Decimal("1.5"),
            rank_bonus=Decimal("150"),
            min_direct_referrals=6,
            min_personal_volume=Decimal("2000"),
            max_grace_periods=2,
        ),
        RankPlan(
            rank=Rank.PLATINUM,
            level_rate_multiplier=Decimal("1.8"),
            matching_multiplier=Decimal("0.40"),
            leadership_multiplier=Decimal("2.0"),
            rank_bonus=Decimal("500"),
            min_direct_referrals=11,
            min_personal_volume=Decimal("5000"),
            max_grace_periods=3,
        ),
        RankPlan(
            rank=Rank.DIAMOND,
            level_rate_multiplier=Decimal("2.0"),
            matching_multiplier=Decimal("0.50"),
            leadership_multiplier=Decimal("3.0"),
            rank_bonus=Decimal("1500"),
            min_direct_referrals=21,
            min_personal_volume=Decimal("15000"),
            max_grace_periods=4,
        ),
    ],
    leadership=LeadershipPlan(),
)


def load_plan_file(path: str | Path) -> CompensationPlan:
    """
    Load compensation plan from JSON file.

    Args:
        path: Path to JSON plan document

    Returns:
        Validated compensation plan

    Raises:
        pydantic.ValidationError: If the document is not a valid plan
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    plan = CompensationPlan.model_validate(raw)
    logger.info(
        f"Loaded compensation plan v{plan.version} from {path}",
        extra={"tiers": len(plan.tiers), "ranks": len(plan.ranks)},
    )
    return plan

