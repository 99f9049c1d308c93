"""
ORM models for the activity store and the report store.

Uniqueness rules live here, in the schema, so that concurrent writers are
arbitrated by the database:

* ``activities``: (commit_hash, user_id), only for rows carrying a commit hash
* ``check_ins``: (user_id, project_id, check_in_date)
* ``weekly_reports``: (project_id, week_start_date)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    text,
)

from workloop.db.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC, returned as aware UTC on every backend."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ProjectRow(Base):
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True, default=_new_id)
    uuid = Column(String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    client_name = Column(String(200), nullable=False)
    client_email = Column(String(320), nullable=True)
    slug = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<ProjectRow id={self.id} name={self.name!r}>"


class ActivityRow(Base):
    __tablename__ = "activities"

    id = Column(String(32), primary_key=True, default=_new_id)
    organization_id = Column(String(64), nullable=False, index=True)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    user_name = Column(String(200), nullable=False)
    user_avatar = Column(String(500), nullable=True)
    type = Column(String(20), nullable=False)
    source = Column(String(30), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes.
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    commit_hash = Column(String(64), nullable=True)
    activity_date = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_activities_project_date", "project_id", "activity_date"),
        Index(
            "uq_activities_commit_user",
            "commit_hash",
            "user_id",
            unique=True,
            sqlite_where=text("commit_hash IS NOT NULL"),
            postgresql_where=text("commit_hash IS NOT NULL"),
        ),
    )


class CheckInRow(Base):
    __tablename__ = "check_ins"

    id = Column(String(32), primary_key=True, default=_new_id)
    organization_id = Column(String(64), nullable=False, index=True)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False)
    user_id = Column(String(64), nullable=False)
    user_name = Column(String(200), nullable=False)
    user_avatar = Column(String(500), nullable=True)
    worked_on = Column(Text, nullable=False)
    planning_to_do = Column(Text, nullable=False)
    blockers = Column(Text, nullable=True)
    hours_worked = Column(Float, nullable=True)
    submitted_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    check_in_date = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "project_id", "check_in_date", name="uq_check_ins_user_project_day"),
    )


class WeeklyReportRow(Base):
    __tablename__ = "weekly_reports"

    id = Column(String(32), primary_key=True, default=_new_id)
    organization_id = Column(String(64), nullable=False, index=True)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False)
    week_start_date = Column(UTCDateTime, nullable=False)
    week_end_date = Column(UTCDateTime, nullable=False)
    total_hours = Column(Float, nullable=False, default=0)
    total_commits = Column(Integer, nullable=False, default=0)
    total_check_ins = Column(Integer, nullable=False, default=0)
    active_members = Column(Integer, nullable=False, default=0)
    document_url = Column(String(1000), nullable=True)
    generated_at = Column(UTCDateTime, nullable=False)
    sent_to_client = Column(Boolean, nullable=False, default=False)
    sent_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "week_start_date", name="uq_weekly_reports_project_week"),
    )

    def __repr__(self):
        return f"<WeeklyReportRow id={self.id} project={self.project_id} week={self.week_start_date}>"
