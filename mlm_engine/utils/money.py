"""
Money helpers.

Fixed-point decimal rounding used for every credited amount.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal


CENT = Decimal("0.01")
ZERO = Decimal("0")


def quantize_money(amount: Decimal) -> Decimal:
    """Round down to cents; the engine never credits a fraction it cannot pay."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_DOWN)


def round_fee(amount: Decimal) -> Decimal:
    """Round a fee half-up to cents."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
