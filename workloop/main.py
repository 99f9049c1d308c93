"""
FastAPI application entry-point.

Provides:
  - ``GET  /health``                — liveness check
  - ``POST /api/reports/generate``  — enqueue a weekly report (202 Accepted)
  - ``GET  /api/reports``           — latest weekly reports
  - ``GET  /api/scheduler``         — scheduler status

On startup the container (database, stores, queue, report handler) is built
and, when enabled, the weekly cron job is registered; on shutdown both are
stopped cleanly.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from workloop import config
from workloop.container import Container, build_container
from workloop.jobs.report_job import enqueue_report
from workloop.logger import get_logger
from workloop.models.report_models import WeeklyReport
from workloop import scheduler as report_scheduler

logger = get_logger(__name__)

VERSION = "1.0.0"


# --------------------------------------------------------------------------- #
# Lifespan
# --------------------------------------------------------------------------- #

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Application starting up…")
    container = build_container(config.settings)
    await container.start()
    app.state.container = container
    if container.settings.scheduler_enabled:
        report_scheduler.start_scheduler(container)
    yield
    logger.info("Application shutting down…")
    report_scheduler.stop_scheduler()
    await container.close()


# --------------------------------------------------------------------------- #
# App
# --------------------------------------------------------------------------- #

app = FastAPI(
    title="WorkLoop Weekly Reporter",
    description="Weekly client reports from project activity → PDF → email",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _container(request: Request) -> Container:
    return request.app.state.container


# --------------------------------------------------------------------------- #
# Request / response models
# --------------------------------------------------------------------------- #

class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str
    version: str = VERSION
    queue: str = ""


class GenerateReportRequest(BaseModel):
    project_id: Optional[str] = None
    email: Optional[str] = None


class GenerateReportResponse(BaseModel):
    message: str
    job_id: str


class SchedulerStatusResponse(BaseModel):
    enabled: bool
    running: bool
    next_run: Optional[str] = None
    schedule: str = ""
    timezone: str = ""


# --------------------------------------------------------------------------- #
# Endpoints — ops
# --------------------------------------------------------------------------- #

@app.get("/health", response_model=HealthResponse, tags=["ops"])
async def health_check(request: Request) -> HealthResponse:
    return HealthResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        queue=_container(request).queue.mode,
    )


@app.get("/api/scheduler", response_model=SchedulerStatusResponse, tags=["ops"])
async def get_scheduler_status(request: Request) -> SchedulerStatusResponse:
    s = _container(request).settings
    sched = report_scheduler.scheduler
    running = bool(sched and sched.running)

    next_run = None
    if running:
        job = sched.get_job(report_scheduler.JOB_ID)
        if job and job.next_run_time:
            next_run = job.next_run_time.isoformat()

    return SchedulerStatusResponse(
        enabled=s.scheduler_enabled,
        running=running,
        next_run=next_run,
        schedule=f"{s.report_day_of_week} {s.report_hour:02d}:{s.report_minute:02d}",
        timezone=s.timezone,
    )


# --------------------------------------------------------------------------- #
# Endpoints — reports
# --------------------------------------------------------------------------- #

@app.post("/api/reports/generate", response_model=GenerateReportResponse, status_code=202, tags=["reports"])
async def generate_report(body: GenerateReportRequest, request: Request) -> GenerateReportResponse:
    """
    Enqueue a weekly report for a project.

    Responds as soon as the job is accepted; in fallback mode the pipeline
    is started in the background and its outcome only shows up in the logs.
    """
    if not body.project_id:
        raise HTTPException(status_code=400, detail="Project ID is required")

    container = _container(request)
    project = await container.activity_store.get_project(body.project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    job = await enqueue_report(container.queue, project.id, email=body.email)
    logger.info("Report generation accepted for project %s (job %s)", project.id, job.id)
    return GenerateReportResponse(message="Report generation started", job_id=job.id)


@app.get("/api/reports", response_model=List[WeeklyReport], tags=["reports"])
async def list_reports(request: Request, project_id: Optional[str] = None) -> List[WeeklyReport]:
    """Latest 20 weekly reports, optionally for one project (internal or public id)."""
    container = _container(request)

    internal_id = None
    if project_id:
        project = await container.activity_store.get_project(project_id)
        if project is None:
            return []
        internal_id = project.id

    return await container.report_store.list_reports(project_id=internal_id)
