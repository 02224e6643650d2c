"""
Dramatiq actors.

Importing this package registers every actor with the broker.
"""

import jobs.broker  # noqa: F401  (actors bind to the configured broker)
from jobs.tasks.commission_events import process_commission_event
from jobs.tasks.expired_demotions import apply_expired_demotions
from jobs.tasks.monthly_qualification import run_monthly_qualification
from jobs.tasks.payout_sweep import run_payout_sweep
from jobs.tasks.period_bonuses import run_period_bonuses


__all__ = [
    "apply_expired_demotions",
    "process_commission_event",
    "run_monthly_qualification",
    "run_payout_sweep",
    "run_period_bonuses",
]
