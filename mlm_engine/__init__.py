"""
MLM commission and qualification engine.

Walks the referral tree, records capped multi-level commissions,
evaluates monthly rank qualification and batches payouts.
"""

__version__ = "1.0.0"
