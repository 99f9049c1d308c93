"""Tests for WeeklyReport persistence and its (project, week) uniqueness."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from workloop.db.tables import WeeklyReportRow
from workloop.errors import DuplicateReportError
from workloop.models.report_models import WeeklyReportCreate, WeeklyStats

WEEK_START = datetime(2026, 10, 10, 12, 0, tzinfo=timezone.utc)


def _report(project_id: str, week_start: datetime = WEEK_START, **overrides) -> WeeklyReportCreate:
    values = dict(
        organization_id="org-1",
        project_id=project_id,
        week_start_date=week_start,
        week_end_date=week_start + timedelta(days=7),
        stats=WeeklyStats(total_hours=4, total_commits=3, total_check_ins=2, active_members=2),
        document_url="",
        generated_at=week_start + timedelta(days=7),
        sent_to_client=True,
        sent_at=week_start + timedelta(days=7),
    )
    values.update(overrides)
    return WeeklyReportCreate(**values)


class TestCreateReport:
    @pytest.mark.asyncio
    async def test_round_trip(self, report_store, acme) -> None:
        created = await report_store.create_report(_report(acme.id))

        assert created.id
        assert created.stats.total_hours == 4
        assert created.week_start_date == WEEK_START
        assert created.week_start_date.tzinfo is not None
        assert await report_store.get_report(created.id) == created

    @pytest.mark.asyncio
    async def test_missing_report_is_none(self, report_store) -> None:
        assert await report_store.get_report("nope") is None

    @pytest.mark.asyncio
    async def test_same_week_rejected(self, report_store, acme) -> None:
        await report_store.create_report(_report(acme.id))

        with pytest.raises(DuplicateReportError) as exc_info:
            await report_store.create_report(_report(acme.id, stats=WeeklyStats(total_hours=9)))

        assert exc_info.value.code == "DUPLICATE_REPORT"
        assert exc_info.value.details["project_id"] == acme.id
        assert len(await report_store.list_reports(project_id=acme.id)) == 1

    @pytest.mark.asyncio
    async def test_other_week_accepted(self, report_store, acme) -> None:
        await report_store.create_report(_report(acme.id))
        await report_store.create_report(_report(acme.id, WEEK_START + timedelta(days=7)))
        assert len(await report_store.list_reports(project_id=acme.id)) == 2

    @pytest.mark.asyncio
    async def test_concurrent_writers_single_winner(self, report_store, acme) -> None:
        results = await asyncio.gather(
            report_store.create_report(_report(acme.id)),
            report_store.create_report(_report(acme.id)),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateReportError)
        assert len(await report_store.list_reports(project_id=acme.id)) == 1

    @pytest.mark.asyncio
    async def test_other_integrity_errors_propagate(self, report_store) -> None:
        with pytest.raises(IntegrityError):
            await report_store.create_report(_report("no-such-project"))


class TestListReports:
    @pytest.mark.asyncio
    async def test_newest_week_first(self, report_store, acme) -> None:
        for offset in (0, 14, 7):
            await report_store.create_report(_report(acme.id, WEEK_START + timedelta(days=offset)))

        reports = await report_store.list_reports(organization_id="org-1")
        assert [r.week_start_date for r in reports] == [
            WEEK_START + timedelta(days=14),
            WEEK_START + timedelta(days=7),
            WEEK_START,
        ]
        assert len(await report_store.list_reports(organization_id="org-1", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_filters(self, report_store, activity_store, acme) -> None:
        other = await activity_store.create_project(organization_id="org-2", name="Globex", client_name="Globex Inc")
        await report_store.create_report(_report(acme.id))
        await report_store.create_report(_report(other.id, organization_id="org-2"))

        assert [r.project_id for r in await report_store.list_reports(project_id=other.id)] == [other.id]
        assert [r.project_id for r in await report_store.list_reports(organization_id="org-1")] == [acme.id]
        assert await report_store.list_reports(organization_id="org-3") == []


def test_project_week_uniqueness_is_the_only_week_index() -> None:
    table = WeeklyReportRow.__table__
    assert not [i for i in table.indexes if {c.name for c in i.columns} == {"project_id", "week_start_date"}]
    assert "uq_weekly_reports_project_week" in {c.name for c in table.constraints}
