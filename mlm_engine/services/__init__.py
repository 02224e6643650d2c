"""
Engine services.

Referral graph, rate table, earnings cap guard, commission engine,
period bonus passes, qualification engine and payout batcher.
"""
