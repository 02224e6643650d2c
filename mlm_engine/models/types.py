"""
Standard type definitions for database models.

Provides consistent types for monetary and rate fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for commissions, caps, payouts
# Precision: 18 digits total, 2 after decimal point (cents)
# Range: up to 9,999,999,999,999,999.99
MoneyType = DECIMAL(18, 2)

# Commission rate / multiplier type
# Precision: 10 digits total, 4 after decimal point
# Suitable for: level rates (e.g., 5.0000%), matching multipliers (0.2000)
RateType = DECIMAL(10, 4)
