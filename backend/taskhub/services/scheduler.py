"""
Background Job Scheduler.

WHAT: Configures and manages APScheduler for periodic jobs.

WHY: Expired tokens must be reclaimed even when nobody tries to use them.
The sweep runs on an interval, independent of requests.

HOW: Uses APScheduler's AsyncIOScheduler with an in-memory job store. The
sweep job calls tokens.clearExpired over the action bus like any other
caller.

Example:
    # In the application lifespan:
    await start_scheduler(broker)
    ...
    await shutdown_scheduler()
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.triggers.interval import IntervalTrigger

from taskhub.bus.broker import ServiceBroker
from taskhub.core.config import settings


logger = logging.getLogger(__name__)

TOKEN_SWEEP_JOB_ID = "token_sweep"

# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> Optional[AsyncIOScheduler]:
    """Get the global scheduler instance."""
    return _scheduler


async def sweep_expired_tokens(broker: ServiceBroker) -> int:
    """
    Run one token sweep.

    Returns:
        Number of tokens removed (0 if the Token Service could not answer)
    """
    result = await broker.call("tokens.clearExpired")
    if not result.ok:
        logger.error(f"Token sweep failed: {result.error.kind.value}: {result.error.message}")
        return 0
    return result.value


async def start_scheduler(broker: ServiceBroker, interval_seconds: Optional[int] = None) -> None:
    """
    Start the background job scheduler.

    Args:
        broker: Started broker the jobs call into
        interval_seconds: Sweep interval (default TOKEN_SWEEP_INTERVAL_SECONDS)
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running")
        return

    interval = interval_seconds or settings.TOKEN_SWEEP_INTERVAL_SECONDS

    _scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults={
            "coalesce": True,  # Combine multiple missed runs into one
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
        timezone="UTC",
    )

    _scheduler.add_job(
        func=sweep_expired_tokens,
        args=[broker],
        trigger=IntervalTrigger(seconds=interval),
        id=TOKEN_SWEEP_JOB_ID,
        name="Expired Token Sweep",
        replace_existing=True,
    )

    _scheduler.start()
    logger.info(f"Scheduler started with token sweep every {interval} seconds")


async def shutdown_scheduler() -> None:
    """
    Shut down the background job scheduler.

    Note: Call this before stopping the broker so no job runs against
    disposed stores.
    """
    global _scheduler

    if _scheduler is None or not _scheduler.running:
        logger.info("Scheduler not running")
        _scheduler = None
        return

    logger.info("Shutting down scheduler...")
    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("Scheduler shut down successfully")


def get_scheduler_status() -> dict:
    """
    Get scheduler status information for health checks.

    Returns:
        Dict with scheduler state and job details
    """
    if _scheduler is None:
        return {"running": False, "jobs": []}

    jobs = [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": str(job.next_run_time) if job.next_run_time else None,
        }
        for job in _scheduler.get_jobs()
    ]
    return {"running": _scheduler.running, "jobs": jobs}
