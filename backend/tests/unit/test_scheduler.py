"""Unit Tests: Settlement scheduler wiring."""

import asyncio
import logging
from datetime import timedelta

from apscheduler.triggers.interval import IntervalTrigger

from coinflip.rounds import InMemoryRoundStore, RoundStoreError
from coinflip.scheduler import JOB_ID, build_scheduler, settlement_job
from coinflip.settlement import SettlementDriver

from conftest import T0, make_round


class ListingFailsStore(InMemoryRoundStore):
    async def list_expired_unsettled(self, now):
        raise RoundStoreError("timeout", operation="list_expired_unsettled")


def test_job_registered_on_interval(settings, driver):
    settings.scheduler.settle_interval_seconds = 7

    scheduler = build_scheduler(settings, driver)
    job = scheduler.get_job(JOB_ID)

    assert isinstance(job.trigger, IntervalTrigger)
    assert job.trigger.interval == timedelta(seconds=7)
    assert job.max_instances == settings.scheduler.max_instances
    assert job.coalesce is True
    assert job.args == (driver,)


def test_job_runs_a_cycle(store, driver, ledger):
    store.add(make_round(1, T0 - timedelta(seconds=120)))

    asyncio.run(settlement_job(driver))

    assert len(ledger.calls) == 1
    assert len(store.rounds) == 2


def test_failed_cycle_is_logged_not_raised(clock, caplog):
    driver = SettlementDriver(ListingFailsStore(), timedelta(seconds=60), clock=clock)

    with caplog.at_level(logging.ERROR, logger="coinflip.scheduler"):
        asyncio.run(settlement_job(driver))

    assert "Settlement cycle failed (list_expired_unsettled): timeout" in caplog.text
