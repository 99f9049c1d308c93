"""
Weekly report job — the handler behind the ``reports`` queue.

Runs, strictly in order:

1. Resolve the project (internal id, then public id).
2. Aggregate the window's activity.
3. Render the PDF (bounded by ``render_timeout_seconds``).
4. Upload it to Cloudinary when configured (best-effort).
5. Store the WeeklyReport (the unique constraint rejects duplicates).
6. Email the client.

The record is written before the email goes out so a re-run for the same
week is rejected even when delivery fails. There is no partial retry: a
retried job re-runs the whole handler.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Union

from workloop.config import Settings
from workloop.errors import UploadError
from workloop.jobs.queue import Job, JobQueue
from workloop.logger import get_logger
from workloop.models.activity_models import Project
from workloop.models.report_models import (
    ReportData,
    ReportJobPayload,
    WeeklyReport,
    WeeklyReportCreate,
    WeeklyStats,
)
from workloop.services.activity_store import ActivityStore
from workloop.services.aggregator import ReportAggregator, resolve_window
from workloop.services.email_service import EmailService
from workloop.services.pdf_service import render_report
from workloop.services.report_store import ReportStore
from workloop.services.upload_service import CloudinaryUploader

logger = get_logger(__name__)

QUEUE_NAME = "reports"
JOB_NAME = "generate-weekly-report"

Renderer = Callable[[ReportData, float, Optional[datetime]], Awaitable[bytes]]


def resolve_recipient(email: Optional[str], project: Project, default: str) -> str:
    """Payload override, then the project's client email, then the placeholder."""
    return email or project.client_email or default


def upload_key(project: Project, window_end: datetime) -> str:
    return f"report-{project.slug}-{window_end:%Y-%m-%d}-{uuid.uuid4()}"


class ReportPipeline:
    """Aggregator → Renderer → (upload) → Report Store → Delivery."""

    def __init__(
        self,
        store: ActivityStore,
        aggregator: ReportAggregator,
        report_store: ReportStore,
        mailer: EmailService,
        uploader: CloudinaryUploader,
        settings: Settings,
        renderer: Renderer = render_report,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.report_store = report_store
        self.mailer = mailer
        self.uploader = uploader
        self.settings = settings
        self.renderer = renderer
        self.clock = clock

    async def handle(self, job: Job) -> WeeklyReport:
        """Queue entry point."""
        payload = ReportJobPayload.model_validate(job.data)
        return await self.run(payload)

    async def run(self, payload: ReportJobPayload) -> WeeklyReport:
        logger.info("=== Report job started for project %s ===", payload.project_id)

        project = await self.store.require_project(payload.project_id)

        start, end = resolve_window(
            payload.window_end,
            timedelta(days=self.settings.report_window_days),
            self.settings.report_window_mode,
        )
        data = await self.aggregator.aggregate_project(project, start, end)

        generated_at = self.clock()
        document = await self.renderer(data, self.settings.render_timeout_seconds, generated_at)

        document_url = await self._upload(project, document, end)

        report = await self.report_store.create_report(
            WeeklyReportCreate(
                organization_id=project.organization_id,
                project_id=project.id,
                week_start_date=start,
                week_end_date=end,
                stats=WeeklyStats(
                    total_hours=data.total_hours,
                    total_commits=data.total_commits,
                    total_check_ins=data.total_check_ins,
                    active_members=data.active_members,
                ),
                document_url=document_url,
                generated_at=generated_at,
                sent_to_client=True,
                sent_at=generated_at,
            )
        )

        recipient = resolve_recipient(payload.email, project, self.settings.default_recipient)
        attachment: Union[bytes, str] = document_url or document
        await self.mailer.send_weekly_report(recipient, project.name, attachment, data.date_range)

        logger.info("=== Report %s sent & saved for %s ===", report.id, project.name)
        return report

    async def _upload(self, project: Project, document: bytes, window_end: datetime) -> str:
        """Archive the PDF; any failure leaves the URL empty and the job running."""
        if not self.uploader.enabled:
            return ""
        try:
            return await self.uploader.upload(document, upload_key(project, window_end))
        except UploadError as exc:
            logger.error("Report upload failed for project %s, continuing without URL: %s", project.id, exc)
            return ""
        except Exception:
            logger.exception("Unexpected upload failure for project %s, continuing without URL", project.id)
            return ""


def register_report_job(queue: JobQueue, pipeline: ReportPipeline) -> None:
    queue.register(QUEUE_NAME, pipeline.handle)


async def enqueue_report(
    queue: JobQueue,
    project_id: str,
    email: Optional[str] = None,
    window_end: Optional[datetime] = None,
) -> Job:
    """
    Add a report job and, in fallback mode, start it without awaiting it.

    The window end is fixed here (default: now) so every broker retry of
    the job covers the same week and collides with an already stored report.

    Returns the queue's acknowledgement; the pipeline outcome is only
    visible in the logs (and the report store).
    """
    pinned_end = window_end or datetime.now(timezone.utc)
    payload = ReportJobPayload(project_id=project_id, email=email, window_end=pinned_end)
    data = payload.model_dump(mode="json", exclude_none=True)
    job = await queue.add(JOB_NAME, data)
    queue.dispatch(QUEUE_NAME, data)
    return job
