"""
Report Store — persists one WeeklyReport per (project, week).

No read-before-write check: two jobs racing for the same project and week
are arbitrated by the ``uq_weekly_reports_project_week`` constraint, and the
loser gets ``DuplicateReportError``.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from workloop.db.database import SessionFactory, is_unique_violation
from workloop.db.tables import WeeklyReportRow
from workloop.errors import DuplicateReportError
from workloop.logger import get_logger
from workloop.models.report_models import WeeklyReport, WeeklyReportCreate, WeeklyStats

logger = get_logger(__name__)


def _to_report(row: WeeklyReportRow) -> WeeklyReport:
    return WeeklyReport(
        id=row.id,
        organization_id=row.organization_id,
        project_id=row.project_id,
        week_start_date=row.week_start_date,
        week_end_date=row.week_end_date,
        stats=WeeklyStats(
            total_hours=row.total_hours,
            total_commits=row.total_commits,
            total_check_ins=row.total_check_ins,
            active_members=row.active_members,
        ),
        document_url=row.document_url,
        generated_at=row.generated_at,
        sent_to_client=row.sent_to_client,
        sent_at=row.sent_at,
    )


class ReportStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def create_report(self, fields: WeeklyReportCreate) -> WeeklyReport:
        """
        Insert a WeeklyReport.

        Raises:
            DuplicateReportError: a report for ``(project_id, week_start_date)`` exists.
        """
        row = WeeklyReportRow(
            organization_id=fields.organization_id,
            project_id=fields.project_id,
            week_start_date=fields.week_start_date,
            week_end_date=fields.week_end_date,
            total_hours=fields.stats.total_hours,
            total_commits=fields.stats.total_commits,
            total_check_ins=fields.stats.total_check_ins,
            active_members=fields.stats.active_members,
            document_url=fields.document_url,
            generated_at=fields.generated_at,
            sent_to_client=fields.sent_to_client,
            sent_at=fields.sent_at,
        )
        async with self._sessions() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if not is_unique_violation(exc):
                    raise
                raise DuplicateReportError(fields.project_id, fields.week_start_date) from exc

            logger.info("Stored weekly report %s for project %s", row.id, row.project_id)
            return _to_report(row)

    async def get_report(self, report_id: str) -> Optional[WeeklyReport]:
        async with self._sessions() as session:
            row = await session.get(WeeklyReportRow, report_id)
            return _to_report(row) if row else None

    async def list_reports(
        self,
        organization_id: Optional[str] = None,
        project_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[WeeklyReport]:
        """Most recent reports first."""
        stmt = select(WeeklyReportRow).order_by(WeeklyReportRow.week_start_date.desc()).limit(limit)
        if organization_id is not None:
            stmt = stmt.where(WeeklyReportRow.organization_id == organization_id)
        if project_id is not None:
            stmt = stmt.where(WeeklyReportRow.project_id == project_id)

        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_report(r) for r in rows]
