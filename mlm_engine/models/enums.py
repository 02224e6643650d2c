"""
Enum definitions for database models.

Centralized enums for type safety and consistency.
"""

from enum import StrEnum


class Rank(StrEnum):
    """Achievement rank, ordered lowest to highest."""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"

    @property
    def order(self) -> int:
        """Position in the rank ladder (0 = lowest)."""
        return RANK_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if isinstance(other, Rank):
            return self.order < other.order
        return NotImplemented

    def __le__(self, other: object) -> bool:
        if isinstance(other, Rank):
            return self.order <= other.order
        return NotImplemented

    def __gt__(self, other: object) -> bool:
        if isinstance(other, Rank):
            return self.order > other.order
        return NotImplemented

    def __ge__(self, other: object) -> bool:
        if isinstance(other, Rank):
            return self.order >= other.order
        return NotImplemented


RANK_ORDER: list[Rank] = [
    Rank.BRONZE,
    Rank.SILVER,
    Rank.GOLD,
    Rank.PLATINUM,
    Rank.DIAMOND,
]


class MembershipTier(StrEnum):
    """Purchased membership plan."""

    BRONZE_I = "bronze_i"
    BRONZE_II = "bronze_ii"
    BRONZE_III = "bronze_iii"
    SILVER_I = "silver_i"
    SILVER_II = "silver_ii"
    SILVER_III = "silver_iii"
    GOLD_I = "gold_i"
    GOLD_II = "gold_ii"
    GOLD_III = "gold_iii"
    PLATINUM_I = "platinum_i"
    PLATINUM_II = "platinum_ii"
    PLATINUM_III = "platinum_iii"
    DIAMOND_I = "diamond_i"
    DIAMOND_II = "diamond_ii"
    DIAMOND_III = "diamond_iii"


class CommissionType(StrEnum):
    """Ledger entry type."""

    LEVEL = "level"
    MATCHING = "matching"
    LEADERSHIP = "leadership"
    RANK_BONUS = "rank_bonus"


class LedgerStatus(StrEnum):
    """Ledger entry lifecycle: pending -> matured -> paid."""

    PENDING = "pending"
    MATURED = "matured"
    PAID = "paid"


class EventType(StrEnum):
    """Triggering event kind."""

    TASK = "task"
    PURCHASE = "purchase"


class GracePeriodStatus(StrEnum):
    """Pending demotion status."""

    PENDING = "pending"
    CANCELLED = "cancelled"
    APPLIED = "applied"


class PayoutStatus(StrEnum):
    """Payout status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(StrEnum):
    """Payout method."""

    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    CRYPTO = "crypto"
    CHECK = "check"
