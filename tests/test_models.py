"""
Tests for the domain and report models.

Validates defaults, validation rules and serialization edge cases.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from workloop.models.activity_models import ActivityRecord, ActivitySource, ActivityType, Project, ProjectStatus
from workloop.models.report_models import ReportData, ReportJobPayload, WeeklyReportCreate


class TestActivityModels:
    """Validate activity domain models."""

    def test_record_is_immutable(self) -> None:
        record = ActivityRecord(
            id="a1",
            organization_id="org-1",
            project_id="p1",
            user_id="u1",
            user_name="Ada",
            type=ActivityType.COMMIT,
            source=ActivitySource.GITHUB,
            title="init",
            activity_date=datetime.now(timezone.utc),
            created_at=datetime.now(timezone.utc),
        )
        assert record.metadata == {}
        with pytest.raises(ValidationError):
            record.title = "changed"

    def test_unknown_activity_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ActivityRecord(
                id="a1",
                organization_id="org-1",
                project_id="p1",
                user_id="u1",
                user_name="Ada",
                type="standup",
                source="manual",
                title="x",
                activity_date=datetime.now(timezone.utc),
                created_at=datetime.now(timezone.utc),
            )

    def test_project_defaults(self) -> None:
        project = Project(
            id="p1", uuid="pub", organization_id="org-1", name="Acme", client_name="Acme Corp", slug="acme"
        )
        assert project.status == ProjectStatus.ACTIVE
        assert project.client_email is None


class TestReportModels:
    """Validate report pipeline models."""

    def test_payload_requires_project_id(self) -> None:
        with pytest.raises(ValidationError):
            ReportJobPayload(project_id="")

    def test_payload_email_optional(self) -> None:
        payload = ReportJobPayload.model_validate({"project_id": "p1"})
        assert payload.email is None
        assert payload.window_end is None

    def test_payload_json_round_trip_keeps_window(self) -> None:
        end = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)
        data = ReportJobPayload(project_id="p1", window_end=end).model_dump(mode="json")
        assert ReportJobPayload.model_validate(data).window_end == end

    def test_date_range_label(self) -> None:
        data = ReportData(
            project_id="p1",
            project_name="Acme",
            client_name="Acme Corp",
            window_start=datetime(2026, 10, 10, tzinfo=timezone.utc),
            window_end=datetime(2026, 10, 17, tzinfo=timezone.utc),
            start_date="Oct 10, 2026",
            end_date="Oct 17, 2026",
        )
        assert data.date_range == "Oct 10, 2026 - Oct 17, 2026"
        assert data.activities == []

    def test_weekly_report_defaults(self) -> None:
        fields = WeeklyReportCreate(
            organization_id="org-1",
            project_id="p1",
            week_start_date=datetime(2026, 10, 10, tzinfo=timezone.utc),
            week_end_date=datetime(2026, 10, 17, tzinfo=timezone.utc),
            generated_at=datetime(2026, 10, 17, tzinfo=timezone.utc),
        )
        assert fields.sent_to_client is False
        assert fields.stats.total_hours == 0
        assert fields.document_url is None
