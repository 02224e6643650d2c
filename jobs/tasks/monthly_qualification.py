"""
Monthly qualification task.

Recomputes ranks for the previous period, opening or resolving grace
periods. Runs on the first day of each month.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import engine_service, run_async
from mlm_engine.utils.datetime_utils import current_period, previous_period
from mlm_engine.utils.exceptions import BatchAlreadyRunningError


@dramatiq.actor(max_retries=2, time_limit=3_600_000)  # 1 hour
def run_monthly_qualification(period: str | None = None) -> None:
    """
    Run monthly rank qualification.

    Args:
        period: YYYY-MM (defaults to the month that just ended)
    """
    period = period or previous_period(current_period())
    logger.info(f"Starting monthly qualification for {period}...")

    try:
        report = run_async(_run_async(period))
    except BatchAlreadyRunningError:
        logger.warning(f"Monthly qualification {period} already running, skipped")
        return

    if report.failures:
        logger.error(
            f"Monthly qualification {period}: {len(report.failures)} member(s) failed, "
            f"re-run to retry them",
            extra={"failed": [f.member_id for f in report.failures]},
        )


async def _run_async(period: str):
    async with engine_service() as engine:
        return await engine.run_monthly_qualification(period)
