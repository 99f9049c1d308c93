"""
Scheduler — enqueues the weekly report for every active project.

Uses APScheduler's ``AsyncIOScheduler`` (backed by the same event loop
FastAPI uses) to fire a weekly cron job at the configured day and time.
The cron job only enqueues; the report pipeline itself runs wherever the
queue backend runs jobs.
"""

from __future__ import annotations

from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from workloop.container import Container
from workloop.jobs.queue import Job
from workloop.jobs.report_job import enqueue_report
from workloop.logger import get_logger

logger = get_logger(__name__)

JOB_ID = "weekly_reports"

scheduler: Optional[AsyncIOScheduler] = None


async def enqueue_weekly_reports(container: Container) -> List[Job]:
    """
    Enqueue one report job per active project.

    Returns:
        The queue acknowledgements, in project creation order.
    """
    projects = await container.activity_store.list_projects()
    logger.info("=== Weekly run: enqueueing reports for %d project(s) ===", len(projects))

    jobs: List[Job] = []
    for project in projects:
        jobs.append(await enqueue_report(container.queue, project.id))
    return jobs


async def _scheduled_weekly_job(container: Container) -> None:
    """Wrapper called by APScheduler's cron trigger."""
    try:
        await enqueue_weekly_reports(container)
    except Exception:
        logger.exception("Unhandled error in scheduled weekly report job")


def start_scheduler(container: Container) -> AsyncIOScheduler:
    """
    Register the weekly cron job and start the scheduler.

    Must be called from inside the running event loop.
    """
    global scheduler
    s = container.settings

    trigger = CronTrigger(
        day_of_week=s.report_day_of_week,
        hour=s.report_hour,
        minute=s.report_minute,
        timezone=s.timezone,
    )

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _scheduled_weekly_job,
        trigger=trigger,
        args=[container],
        id=JOB_ID,
        name="Weekly Client Reports",
        replace_existing=True,
        misfire_grace_time=3600,  # allow up to 1 h late if the server was down
    )
    scheduler.start()
    logger.info(
        "Scheduler started — weekly reports run %s at %02d:%02d %s",
        s.report_day_of_week,
        s.report_hour,
        s.report_minute,
        s.timezone,
    )
    return scheduler


def stop_scheduler() -> None:
    """Gracefully shut down the scheduler."""
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    scheduler = None
