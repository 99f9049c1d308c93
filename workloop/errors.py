"""
Error hierarchy for the weekly report pipeline.

Every error carries a machine-readable ``code`` and a ``details`` dict so
job logs and the API layer can report failures consistently.

Hierarchy:
    WorkLoopError
    ├── ConfigError
    ├── NotFoundError
    ├── DuplicateCheckInError
    └── ReportPipelineError
        ├── RenderError
        ├── UploadError            (recoverable, never aborts a job)
        ├── DuplicateReportError   (report for this week already exists)
        └── DeliveryError
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional


class WorkLoopError(Exception):
    """Base exception for all WorkLoop errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


class ConfigError(WorkLoopError):
    """Missing or invalid configuration."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class NotFoundError(WorkLoopError):
    """A project (or other resource) could not be resolved."""

    def __init__(self, resource: str, ref: str):
        self.resource = resource
        self.ref = ref
        super().__init__(
            f"{resource} not found: {ref}",
            code="NOT_FOUND", details={"resource": resource, "ref": ref},
        )


class DuplicateCheckInError(WorkLoopError):
    """The user already submitted a check-in for this project today."""

    def __init__(self, user_id: str, project_id: str, check_in_date: datetime):
        super().__init__(
            "Check-in already submitted for today",
            code="DUPLICATE_CHECK_IN",
            details={
                "user_id": user_id,
                "project_id": project_id,
                "check_in_date": check_in_date.isoformat(),
            },
        )


# --- Pipeline errors ---

class ReportPipelineError(WorkLoopError):
    """Base class for failures inside the report pipeline."""


class RenderError(ReportPipelineError):
    """PDF generation failed or timed out."""

    def __init__(
        self,
        message: str,
        project_id: str = "",
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ):
        self.project_id = project_id
        super().__init__(
            message,
            code="RENDER_FAILED",
            details={
                "project_id": project_id,
                "window_start": window_start.isoformat() if window_start else None,
                "window_end": window_end.isoformat() if window_end else None,
            },
        )


class UploadError(ReportPipelineError):
    """Archival upload of the rendered document failed."""

    def __init__(self, message: str, destination_key: str = "", status_code: Optional[int] = None):
        self.destination_key = destination_key
        self.status_code = status_code
        super().__init__(
            message,
            code="UPLOAD_FAILED",
            details={"destination_key": destination_key, "status_code": status_code},
        )


class DuplicateReportError(ReportPipelineError):
    """A WeeklyReport for this project and week already exists."""

    def __init__(self, project_id: str, week_start_date: datetime):
        self.project_id = project_id
        self.week_start_date = week_start_date
        super().__init__(
            f"Weekly report already generated for project {project_id} "
            f"(week starting {week_start_date.isoformat()})",
            code="DUPLICATE_REPORT",
            details={"project_id": project_id, "week_start_date": week_start_date.isoformat()},
        )


class DeliveryError(ReportPipelineError):
    """The report email could not be sent."""

    def __init__(self, message: str, recipient: str = ""):
        self.recipient = recipient
        super().__init__(message, code="DELIVERY_FAILED", details={"recipient": recipient})
