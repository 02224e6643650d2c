"""
Job scheduler.

Sends the periodic engine actors on a cron schedule.
"""

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

import jobs.broker  # noqa: F401  (registers broker before actors)
from jobs.tasks import (
    apply_expired_demotions,
    run_monthly_qualification,
    run_payout_sweep,
    run_period_bonuses,
)
from mlm_engine.config.logging import setup_logging


def create_scheduler() -> AsyncIOScheduler:
    """Build scheduler with the engine's periodic jobs."""
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        run_monthly_qualification.send,
        CronTrigger(day=1, hour=0, minute=10),
        id="monthly_qualification",
        replace_existing=True,
    )
    scheduler.add_job(
        run_period_bonuses.send,
        CronTrigger(day=1, hour=2, minute=0),
        id="period_bonuses",
        replace_existing=True,
    )
    scheduler.add_job(
        apply_expired_demotions.send,
        CronTrigger(hour=1, minute=0),
        id="expired_demotions",
        replace_existing=True,
    )
    scheduler.add_job(
        run_payout_sweep.send,
        CronTrigger(day_of_week="mon", hour=3, minute=0),
        id="payout_sweep",
        replace_existing=True,
    )
    return scheduler


async def main() -> None:
    setup_logging()
    scheduler = create_scheduler()
    scheduler.start()
    logger.info(
        f"Scheduler started with {len(scheduler.get_jobs())} jobs"
    )
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
