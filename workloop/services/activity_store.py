"""
Activity Store — projects, append-only activity records and check-ins.

Activity records are produced by the webhook ingestion handlers (commits),
check-in submission and manual entry, and consumed read-only by the report
aggregator. Records are never updated or deleted.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from workloop.db.database import SessionFactory, is_unique_violation
from workloop.db.tables import ActivityRow, CheckInRow, ProjectRow
from workloop.errors import DuplicateCheckInError, NotFoundError
from workloop.logger import get_logger
from workloop.models.activity_models import (
    ActivityRecord,
    ActivitySource,
    ActivityType,
    CheckIn,
    CommitInfo,
    Project,
    ProjectStatus,
)

logger = get_logger(__name__)


def slugify(name: str) -> str:
    """Lower-case, dash-separated slug for file names and upload keys."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "project"


def start_of_day(moment: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """Midnight of *moment*'s calendar day in *tz*, returned in UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


def _to_record(row: ActivityRow) -> ActivityRecord:
    return ActivityRecord(
        id=row.id,
        organization_id=row.organization_id,
        project_id=row.project_id,
        user_id=row.user_id,
        user_name=row.user_name,
        user_avatar=row.user_avatar,
        type=ActivityType(row.type),
        source=ActivitySource(row.source),
        title=row.title,
        description=row.description,
        metadata=dict(row.metadata_ or {}),
        activity_date=row.activity_date,
        created_at=row.created_at,
    )


class ActivityStore:
    """Read/append access to projects, activities and check-ins."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(
        self,
        organization_id: str,
        name: str,
        client_name: str,
        client_email: Optional[str] = None,
        slug: Optional[str] = None,
        public_id: Optional[str] = None,
    ) -> Project:
        row = ProjectRow(
            organization_id=organization_id,
            name=name,
            client_name=client_name,
            client_email=client_email,
            slug=slug or slugify(name),
            uuid=public_id or str(uuid.uuid4()),
            status=ProjectStatus.ACTIVE.value,
        )
        async with self._sessions() as session:
            session.add(row)
            await session.commit()
            logger.info("Created project %s (%s)", row.name, row.id)
            return Project.model_validate(row)

    async def get_project(self, ref: str) -> Optional[Project]:
        """
        Resolve a project by internal id, falling back to its public uuid.

        Callers pass either form, so both lookups are tried in that order.
        """
        async with self._sessions() as session:
            row = await session.get(ProjectRow, ref)
            if row is None:
                result = await session.execute(select(ProjectRow).where(ProjectRow.uuid == ref))
                row = result.scalar_one_or_none()
            return Project.model_validate(row) if row else None

    async def require_project(self, ref: str) -> Project:
        project = await self.get_project(ref)
        if project is None:
            raise NotFoundError("Project", ref)
        return project

    async def list_projects(self, status: Optional[ProjectStatus] = ProjectStatus.ACTIVE) -> List[Project]:
        stmt = select(ProjectRow).order_by(ProjectRow.created_at)
        if status is not None:
            stmt = stmt.where(ProjectRow.status == status.value)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [Project.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    async def add_activity(
        self,
        project: Project,
        user_id: str,
        user_name: str,
        type: ActivityType,
        source: ActivitySource,
        title: str,
        activity_date: datetime,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        user_avatar: Optional[str] = None,
    ) -> Optional[ActivityRecord]:
        """
        Append one activity record.

        Returns:
            The stored record, or ``None`` when a commit with the same hash
            was already recorded for this user (webhook replay).
        """
        meta = dict(metadata or {})
        row = self._activity_row(project, user_id, user_name, type, source, title, activity_date,
                                 description, meta, user_avatar)
        async with self._sessions() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if row.commit_hash and is_unique_violation(exc):
                    logger.debug("Skipping duplicate commit %s for user %s", row.commit_hash, user_id)
                    return None
                raise
            return _to_record(row)

    async def record_commits(
        self,
        project: Project,
        user_id: str,
        user_name: str,
        commits: Iterable[CommitInfo],
        user_avatar: Optional[str] = None,
    ) -> List[ActivityRecord]:
        """Store pushed commits as ``commit`` activities, skipping replays."""
        stored: List[ActivityRecord] = []
        for commit in commits:
            metadata: Dict[str, Any] = {
                "commitHash": commit.hash,
                "repositoryName": commit.repository_name,
            }
            if commit.branch_name:
                metadata["branchName"] = commit.branch_name
            if commit.files_changed is not None:
                metadata["filesChanged"] = commit.files_changed

            record = await self.add_activity(
                project,
                user_id=user_id,
                user_name=user_name,
                user_avatar=user_avatar,
                type=ActivityType.COMMIT,
                source=ActivitySource.GITHUB,
                title=commit.message.split("\n")[0][:200],
                description=f"{commit.repository_name}@{commit.branch_name}" if commit.branch_name else None,
                metadata=metadata,
                activity_date=commit.timestamp,
            )
            if record is not None:
                stored.append(record)

        logger.info("Recorded %d new commit(s) on project %s", len(stored), project.id)
        return stored

    async def list_activities(self, project_id: str, start: datetime, end: datetime) -> List[ActivityRecord]:
        """All activities of *project_id* with ``start <= activity_date <= end``."""
        stmt = (
            select(ActivityRow)
            .where(
                ActivityRow.project_id == project_id,
                ActivityRow.activity_date >= start,
                ActivityRow.activity_date <= end,
            )
            .order_by(ActivityRow.activity_date, ActivityRow.created_at)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_record(r) for r in rows]

    # ------------------------------------------------------------------
    # Check-ins
    # ------------------------------------------------------------------

    async def submit_check_in(
        self,
        project: Project,
        user_id: str,
        user_name: str,
        worked_on: str,
        planning_to_do: str,
        blockers: Optional[str] = None,
        hours_worked: Optional[float] = None,
        user_avatar: Optional[str] = None,
        now: Optional[datetime] = None,
        tz: tzinfo = timezone.utc,
    ) -> CheckIn:
        """
        Store a daily check-in and its derived ``check_in`` activity.

        Both rows are written in one transaction. The activity carries the
        self-reported hours in ``metadata.hours``, which is where the report
        aggregator reads them from.

        Raises:
            DuplicateCheckInError: the user already checked in today.
        """
        submitted_at = now or datetime.now(timezone.utc)
        check_in_date = start_of_day(submitted_at, tz)

        check_in = CheckInRow(
            id=uuid.uuid4().hex,
            organization_id=project.organization_id,
            project_id=project.id,
            user_id=user_id,
            user_name=user_name,
            user_avatar=user_avatar,
            worked_on=worked_on,
            planning_to_do=planning_to_do,
            blockers=blockers,
            hours_worked=hours_worked,
            submitted_at=submitted_at,
            check_in_date=check_in_date,
        )
        activity = self._activity_row(
            project,
            user_id,
            user_name,
            ActivityType.CHECK_IN,
            ActivitySource.MANUAL,
            "Daily Check-in",
            submitted_at,
            worked_on,
            {"checkInId": check_in.id, "hours": hours_worked},
            user_avatar,
        )

        async with self._sessions() as session:
            session.add_all([check_in, activity])
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if not is_unique_violation(exc):
                    raise
                raise DuplicateCheckInError(user_id, project.id, check_in_date) from exc
            logger.info("Check-in stored for %s on project %s", user_name, project.id)
            return CheckIn.model_validate(check_in)

    @staticmethod
    def _activity_row(
        project: Project,
        user_id: str,
        user_name: str,
        type: ActivityType,
        source: ActivitySource,
        title: str,
        activity_date: datetime,
        description: Optional[str],
        metadata: Dict[str, Any],
        user_avatar: Optional[str],
    ) -> ActivityRow:
        return ActivityRow(
            id=uuid.uuid4().hex,
            organization_id=project.organization_id,
            project_id=project.id,
            user_id=user_id,
            user_name=user_name,
            user_avatar=user_avatar,
            type=type.value,
            source=source.value,
            title=title,
            description=description,
            metadata_=metadata,
            commit_hash=metadata.get("commitHash") or None,
            activity_date=activity_date,
            created_at=datetime.now(timezone.utc),
        )
