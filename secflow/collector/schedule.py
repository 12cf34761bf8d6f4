from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable

import newrelic.agent
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from secflow.utils.logging import get_logger

logger = get_logger(__name__)

SCAN_JOB_ID = "scan_repositories"
SCAN_TIMEOUT_SECONDS = 30 * 60

ScanFunc = Callable[[], Awaitable[object]]


_CRON_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _cron_day_of_week(field: str) -> str:
    """Map crontab weekday numbers (0 or 7 = Sunday) to names; APScheduler counts from Monday = 0."""
    return re.sub(r"(?<![/\d])([0-7])(?!\d)", lambda m: _CRON_WEEKDAYS[int(m.group(1))], field)


def make_trigger(crontab: str) -> CronTrigger:
    parts = crontab.split()
    if len(parts) == 5:
        # minute hour day month day_of_week
        minute, hour, day, month, dow = parts
        sec = "0"
    elif len(parts) == 6:
        # second minute hour day month day_of_week
        sec, minute, hour, day, month, dow = parts
    else:
        raise ValueError(f"Invalid crontab '{crontab}': expected 5 or 6 fields")

    return CronTrigger(
        second=sec,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_cron_day_of_week(dow),
        timezone="UTC",
    )


async def run_scan_with_timeout(scan: ScanFunc, timeout_seconds: float = SCAN_TIMEOUT_SECONDS) -> None:
    """Run one scan, abandoning it once it exceeds the timeout."""
    try:
        await asyncio.wait_for(scan(), timeout=timeout_seconds)
    except TimeoutError:
        logger.error(f"Repository scan timed out after {timeout_seconds}s")
        raise


def setup_scheduler(scheduler: AsyncIOScheduler, scan: ScanFunc, crontab: str) -> None:
    """
    Registers the repository scan on the given AsyncIOScheduler.
    A crontab that cannot be parsed raises ValueError before anything is registered.
    """
    trigger = make_trigger(crontab)

    def _job_listener(event: JobExecutionEvent) -> None:
        job = scheduler.get_job(event.job_id)
        job_name = job.name if job else event.job_id
        if event.exception:
            logger.error("Cron job failed", job_name=job_name, exception=str(event.exception))
            newrelic.agent.record_exception()
        else:
            logger.info(
                "Cron job succeeded",
                job_name=job_name,
                scheduled_run=str(event.scheduled_run_time),
            )

    scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    async def _scheduled_scan() -> None:
        await run_scan_with_timeout(scan)

    scheduler.add_job(
        _scheduled_scan,
        trigger=trigger,
        id=SCAN_JOB_ID,
        name="Scan organization repositories",
        max_instances=1,
        misfire_grace_time=300,
        coalesce=True,
        replace_existing=True,
    )
    logger.info(f"APScheduler: registered repository scan with schedule {crontab}")
