"""Settlement trigger using APScheduler."""

import asyncio
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from coinflip.config import Settings
from coinflip.rounds import SettlementCycleError
from coinflip.settlement import SettlementDriver, create_settlement_driver

logger = logging.getLogger(__name__)

JOB_ID = "settle-coinflip"


async def settlement_job(driver: SettlementDriver) -> None:
    """One scheduled tick. A failed cycle is logged; the next tick is the retry."""
    try:
        report = await driver.run_settlement_cycle()
    except SettlementCycleError as e:
        logger.error(f"Settlement cycle failed ({e.operation}): {e}")
        return

    logger.info(
        f"Settled {report.settled_count} rounds "
        f"({len(report.failures)} failed), current round #{report.current_round.round_number}"
    )


def build_scheduler(settings: Settings, driver: SettlementDriver) -> AsyncIOScheduler:
    """Register the settlement job on a fixed interval.

    Overlapping runs are allowed up to ``max_instances``; missed ticks coalesce.
    """
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    interval = settings.scheduler.settle_interval_seconds

    scheduler.add_job(
        settlement_job,
        IntervalTrigger(seconds=interval),
        args=[driver],
        id=JOB_ID,
        name="Coinflip: Settle Rounds",
        max_instances=settings.scheduler.max_instances,
        coalesce=True,
        next_run_time=datetime.now(timezone.utc),
    )
    logger.info(f"Registered job: Settle Rounds (every {interval}s)")
    return scheduler


async def _run(settings: Settings) -> None:
    driver = create_settlement_driver(settings)
    scheduler = build_scheduler(settings, driver)

    scheduler.start()
    logger.info("Scheduler started, press Ctrl+C to stop")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await driver.store.close()
        logger.info("Scheduler stopped cleanly")


def start_scheduler(settings: Settings) -> None:
    """Run the settlement scheduler until interrupted."""
    try:
        asyncio.run(_run(settings))
    except (KeyboardInterrupt, SystemExit):
        logger.info("Received interrupt signal")
