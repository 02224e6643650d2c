"""
Payout sweep task.

Matures held commissions and creates payouts for balances above each
member's threshold.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import engine_service, run_async
from mlm_engine.utils.datetime_utils import current_period
from mlm_engine.utils.exceptions import BatchAlreadyRunningError


@dramatiq.actor(max_retries=2, time_limit=1_800_000)  # 30 min
def run_payout_sweep(period: str | None = None) -> None:
    """
    Run the payout sweep.

    Args:
        period: YYYY-MM label of created payouts (defaults to current month)
    """
    period = period or current_period()
    logger.info(f"Starting payout sweep for {period}...")

    try:
        report = run_async(_run_async(period))
    except BatchAlreadyRunningError:
        logger.warning(f"Payout sweep {period} already running, skipped")
        return

    if report.failures:
        logger.error(
            f"Payout sweep {period}: {len(report.failures)} member(s) failed",
            extra={"failed": [f.member_id for f in report.failures]},
        )


async def _run_async(period: str):
    async with engine_service() as engine:
        return await engine.run_payout_sweep(period)
