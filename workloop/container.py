"""
Process-wide wiring.

Everything the report pipeline needs is built once at startup from a
``Settings`` instance and handed around explicitly: the API lifespan, the
scheduler and the Dramatiq worker all use the same construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo

import dramatiq
from sqlalchemy.ext.asyncio import AsyncEngine

from workloop.config import Settings
from workloop.db.database import SessionFactory, create_engine, create_session_factory, init_models
from workloop.jobs.queue import HandlerRegistry, JobQueue, QueueConfig, create_queue
from workloop.jobs.report_job import QUEUE_NAME, ReportPipeline, register_report_job
from workloop.logger import get_logger
from workloop.services.activity_store import ActivityStore
from workloop.services.aggregator import ReportAggregator
from workloop.services.email_service import EmailService
from workloop.services.report_store import ReportStore
from workloop.services.upload_service import CloudinaryUploader

logger = get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: AsyncEngine
    sessions: SessionFactory
    activity_store: ActivityStore
    report_store: ReportStore
    aggregator: ReportAggregator
    mailer: EmailService
    uploader: CloudinaryUploader
    queue: JobQueue
    pipeline: ReportPipeline

    async def start(self) -> None:
        await init_models(self.engine)

    async def close(self) -> None:
        await self.queue.close()
        await self.mailer.close()
        await self.engine.dispose()


def build_container(
    settings: Settings,
    queue_config: Optional[QueueConfig] = None,
    broker: Optional[dramatiq.Broker] = None,
    pooled: bool = True,
) -> Container:
    """
    Build the object graph and register the report handler.

    Args:
        settings:     Application settings.
        queue_config: Backend selection; defaults to ``QueueConfig.from_settings``.
        broker:       Pre-built Dramatiq broker (tests use ``StubBroker``).
        pooled:       ``False`` for Dramatiq workers (see ``create_engine``).
    """
    engine = create_engine(settings.database_url, pooled=pooled)
    sessions = create_session_factory(engine)

    activity_store = ActivityStore(sessions)
    report_store = ReportStore(sessions)
    aggregator = ReportAggregator(activity_store, ZoneInfo(settings.timezone))
    mailer = EmailService(settings)
    uploader = CloudinaryUploader(settings)

    config = queue_config or QueueConfig.from_settings(settings)
    queue = create_queue(QUEUE_NAME, config, HandlerRegistry(), broker=broker)

    pipeline = ReportPipeline(
        store=activity_store,
        aggregator=aggregator,
        report_store=report_store,
        mailer=mailer,
        uploader=uploader,
        settings=settings,
    )
    register_report_job(queue, pipeline)
    queue.add_loop_finalizer(mailer.release_loop)

    if not uploader.enabled:
        logger.warning("Cloudinary not configured, reports will be emailed without archival upload")
    logger.info("Container ready (queue=%s, database=%s)", queue.mode, engine.url.render_as_string())

    return Container(
        settings=settings,
        engine=engine,
        sessions=sessions,
        activity_store=activity_store,
        report_store=report_store,
        aggregator=aggregator,
        mailer=mailer,
        uploader=uploader,
        queue=queue,
        pipeline=pipeline,
    )
