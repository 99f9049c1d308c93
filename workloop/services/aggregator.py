"""
Report Aggregator — turns a project's activity window into ``ReportData``.

The aggregator only reads: it resolves the project, fetches the activity
records inside the window (both bounds inclusive), groups them by display
date and computes the summary statistics consumed by the renderer and the
report store.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Iterable, List, Optional, Tuple

from workloop.errors import NotFoundError
from workloop.logger import get_logger
from workloop.models.activity_models import ActivityRecord, ActivityType, Project
from workloop.models.report_models import DayGroup, ReportData, ReportItem
from workloop.services.activity_store import ActivityStore

logger = get_logger(__name__)

DEFAULT_WINDOW = timedelta(days=7)


# ------------------------------------------------------------------
# Formatting helpers
# ------------------------------------------------------------------

def display_date(moment: datetime, tz: tzinfo = timezone.utc) -> str:
    """``Oct 7, 2026`` style date in *tz*."""
    local = moment.astimezone(tz)
    return f"{local:%b} {local.day}, {local.year}"


def display_time(moment: datetime, tz: tzinfo = timezone.utc) -> str:
    """``02:30 PM`` style time in *tz*."""
    return moment.astimezone(tz).strftime("%I:%M %p")


def _hours(value: Any) -> float:
    # bool is an int subclass; a stray True must not count as an hour.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


# ------------------------------------------------------------------
# Windows
# ------------------------------------------------------------------

def rolling_window(window_end: datetime, window_length: timedelta = DEFAULT_WINDOW) -> Tuple[datetime, datetime]:
    return window_end - window_length, window_end


def calendar_week(moment: datetime) -> Tuple[datetime, datetime]:
    """Monday 00:00 UTC of *moment*'s week up to the last microsecond of Sunday."""
    utc = moment.astimezone(timezone.utc)
    monday = (utc - timedelta(days=utc.weekday())).replace(hour=0, minute=0, second=0, microsecond=0)
    return monday, monday + timedelta(days=7) - timedelta(microseconds=1)


def resolve_window(
    window_end: Optional[datetime] = None,
    window_length: timedelta = DEFAULT_WINDOW,
    mode: str = "rolling",
) -> Tuple[datetime, datetime]:
    """Compute ``(start, end)`` for a report run triggered at *window_end* (default now)."""
    end = window_end or datetime.now(timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    if mode == "calendar":
        return calendar_week(end)
    return rolling_window(end, window_length)


# ------------------------------------------------------------------
# Pure aggregation
# ------------------------------------------------------------------

def group_by_day(records: Iterable[ActivityRecord], tz: tzinfo = timezone.utc) -> List[DayGroup]:
    """Group records by display date, keeping the order they arrive in."""
    groups: "OrderedDict[str, List[ReportItem]]" = OrderedDict()
    for record in records:
        day = display_date(record.activity_date, tz)
        groups.setdefault(day, []).append(
            ReportItem(
                type=record.type.value,
                title=record.title,
                description=record.description,
                user=record.user_name or "Unknown",
                time=display_time(record.activity_date, tz),
            )
        )
    return [DayGroup(date=day, items=items) for day, items in groups.items()]


def total_hours(records: Iterable[ActivityRecord]) -> float:
    """Sum of ``metadata.hours``; missing or non-numeric values count as 0."""
    return sum(_hours(r.metadata.get("hours")) for r in records)


def build_report_data(
    project: Project,
    records: List[ActivityRecord],
    window_start: datetime,
    window_end: datetime,
    tz: tzinfo = timezone.utc,
) -> ReportData:
    return ReportData(
        project_id=project.id,
        project_name=project.name,
        client_name=project.client_name,
        window_start=window_start,
        window_end=window_end,
        start_date=display_date(window_start, tz),
        end_date=display_date(window_end, tz),
        total_hours=total_hours(records),
        activity_count=len(records),
        total_commits=sum(1 for r in records if r.type == ActivityType.COMMIT),
        total_check_ins=sum(1 for r in records if r.type == ActivityType.CHECK_IN),
        active_members=len({r.user_id for r in records}),
        activities=group_by_day(records, tz),
    )


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------

class ReportAggregator:
    """Queries the activity store for one window and shapes ``ReportData``."""

    def __init__(self, store: ActivityStore, tz: tzinfo = timezone.utc) -> None:
        self._store = store
        self._tz = tz

    async def aggregate(
        self,
        project_ref: str,
        window_end: Optional[datetime] = None,
        window_length: timedelta = DEFAULT_WINDOW,
        window_start: Optional[datetime] = None,
    ) -> ReportData:
        """
        Aggregate ``[window_end - window_length, window_end]`` for a project.

        Args:
            project_ref:   Internal id or public uuid of the project.
            window_end:    Upper bound (inclusive); defaults to now.
            window_length: Lookback length; ignored when *window_start* is given.
            window_start:  Explicit lower bound (inclusive).

        Raises:
            NotFoundError: neither lookup resolved a project.
        """
        project = await self._store.get_project(project_ref)
        if project is None:
            raise NotFoundError("Project", project_ref)

        end = window_end or datetime.now(timezone.utc)
        start = window_start or end - window_length
        return await self.aggregate_project(project, start, end)

    async def aggregate_project(self, project: Project, start: datetime, end: datetime) -> ReportData:
        """Aggregate an already-resolved project over ``[start, end]``."""
        records = await self._store.list_activities(project.id, start, end)
        data = build_report_data(project, records, start, end, self._tz)

        logger.info(
            "Aggregated %d activities (%d day groups, %.1fh) for project %s",
            data.activity_count,
            len(data.activities),
            data.total_hours,
            project.id,
        )
        return data
