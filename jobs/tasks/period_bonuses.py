"""
Period bonuses task.

Pays leadership and rank bonuses for a closed period.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import engine_service, run_async
from mlm_engine.utils.datetime_utils import current_period, previous_period
from mlm_engine.utils.exceptions import BatchAlreadyRunningError


@dramatiq.actor(max_retries=2, time_limit=3_600_000)  # 1 hour
def run_period_bonuses(period: str | None = None) -> None:
    """
    Run leadership and rank bonus passes.

    Args:
        period: YYYY-MM (defaults to the month that just ended)
    """
    period = period or previous_period(current_period())
    logger.info(f"Starting period bonuses for {period}...")

    try:
        leadership, rank_bonus = run_async(_run_async(period))
    except BatchAlreadyRunningError:
        logger.warning(f"Period bonuses {period} already running, skipped")
        return

    failed = len(leadership.failures) + len(rank_bonus.failures)
    if failed:
        logger.error(f"Period bonuses {period}: {failed} member(s) failed")


async def _run_async(period: str):
    async with engine_service() as engine:
        leadership = await engine.run_leadership_bonuses(period)
        rank_bonus = await engine.run_rank_bonuses(period)
        return leadership, rank_bonus
