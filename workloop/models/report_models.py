"""
Models for the weekly report pipeline: the renderer input, the persisted
WeeklyReport record, job payloads and delivery receipts.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Renderer input
# ---------------------------------------------------------------------------

class ReportItem(BaseModel):
    """One line of the activity log."""

    type: str
    title: str
    description: Optional[str] = None
    user: str = "Unknown"
    time: Optional[str] = None


class DayGroup(BaseModel):
    """All items that happened on one display date, in query order."""

    date: str = Field(..., description="Display date, e.g. 'Oct 7, 2026'")
    items: List[ReportItem] = Field(default_factory=list)


class ReportData(BaseModel):
    """Aggregated, renderer-ready summary of one project window."""

    project_id: str
    project_name: str
    client_name: str
    window_start: datetime
    window_end: datetime
    start_date: str = Field(..., description="Display start date")
    end_date: str = Field(..., description="Display end date")
    total_hours: float = 0
    activity_count: int = 0
    total_commits: int = 0
    total_check_ins: int = 0
    active_members: int = 0
    activities: List[DayGroup] = Field(default_factory=list)

    @property
    def date_range(self) -> str:
        return f"{self.start_date} - {self.end_date}"


# ---------------------------------------------------------------------------
# Weekly report record
# ---------------------------------------------------------------------------

class WeeklyStats(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_hours: float = 0
    total_commits: int = 0
    total_check_ins: int = 0
    active_members: int = 0


class WeeklyReportCreate(BaseModel):
    """Fields written by the pipeline when a report run succeeds."""

    organization_id: str
    project_id: str
    week_start_date: datetime
    week_end_date: datetime
    stats: WeeklyStats = Field(default_factory=WeeklyStats)
    document_url: Optional[str] = None
    generated_at: datetime
    sent_to_client: bool = False
    sent_at: Optional[datetime] = None


class WeeklyReport(WeeklyReportCreate):
    """A persisted report record; one per (project_id, week_start_date)."""

    model_config = ConfigDict(from_attributes=True)

    id: str


# ---------------------------------------------------------------------------
# Jobs & delivery
# ---------------------------------------------------------------------------

class ReportJobPayload(BaseModel):
    """Data carried by a ``generate-weekly-report`` job."""

    project_id: str = Field(..., min_length=1, description="Internal or public project id")
    email: Optional[str] = Field(None, description="Recipient override")
    window_end: Optional[datetime] = Field(None, description="Pins the report window (default: now)")


class DeliveryReceipt(BaseModel):
    """What the mail transport reported back after sending."""

    message_id: str
    recipient: str
    subject: str
    attached: bool = Field(..., description="True when the PDF was attached rather than linked")
    response: str = ""
