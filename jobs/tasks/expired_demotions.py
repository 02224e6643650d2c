"""
Expired demotions task.

Applies pending demotions whose grace period has ended. Runs daily.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import engine_service, run_async
from mlm_engine.utils.exceptions import BatchAlreadyRunningError


@dramatiq.actor(max_retries=3, time_limit=600_000)  # 10 min
def apply_expired_demotions() -> None:
    """Apply demotions of expired grace periods."""
    try:
        report = run_async(_run_async())
    except BatchAlreadyRunningError:
        logger.warning("Expired demotions already running, skipped")
        return

    logger.info(
        f"Expired demotions: {len(report.applied)} applied, "
        f"{len(report.failures)} failed"
    )


async def _run_async():
    async with engine_service() as engine:
        return await engine.apply_expired_demotions()
