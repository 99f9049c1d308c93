"""
Domain models for projects, activity records and check-ins.

These Pydantic models define the structured data that flows between the
stores and the report pipeline. They are intentionally decoupled from the
storage rows so the pipeline never touches SQLAlchemy objects.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ActivityType(str, Enum):
    COMMIT = "commit"
    CALENDAR = "calendar"
    CHECK_IN = "check_in"
    MANUAL = "manual"


class ActivitySource(str, Enum):
    GITHUB = "github"
    GOOGLE_CALENDAR = "google_calendar"
    MANUAL = "manual"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    ARCHIVED = "archived"


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

class Project(BaseModel):
    """A client project. ``uuid`` is the public identifier used in client links."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Internal identifier")
    uuid: str = Field(..., description="Public identifier")
    organization_id: str
    name: str
    client_name: str
    client_email: Optional[str] = None
    slug: str
    status: ProjectStatus = ProjectStatus.ACTIVE


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------

class ActivityRecord(BaseModel):
    """An immutable fact about work done on a project."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    organization_id: str
    project_id: str
    user_id: str
    user_name: str
    user_avatar: Optional[str] = None
    type: ActivityType
    source: ActivitySource
    title: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Type-specific bag: commitHash, repositoryName, branchName, eventId, checkInId, hours...",
    )
    activity_date: datetime
    created_at: datetime


class CommitInfo(BaseModel):
    """A pushed commit as handed over by the GitHub webhook producer."""

    hash: str
    message: str
    repository_name: str
    branch_name: Optional[str] = None
    files_changed: Optional[int] = None
    timestamp: datetime


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------

class CheckIn(BaseModel):
    """A once-per-day standup entry for one user on one project."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    project_id: str
    user_id: str
    user_name: str
    user_avatar: Optional[str] = None
    worked_on: str
    planning_to_do: str
    blockers: Optional[str] = None
    hours_worked: Optional[float] = None
    submitted_at: datetime
    check_in_date: datetime = Field(..., description="Submission day truncated to midnight")
