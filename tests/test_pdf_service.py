"""
Tests for the PDF renderer.

The renderer must be deterministic for pinned input, cope with empty
windows and missing optional fields, and surface engine faults and
overruns as ``RenderError``.
"""

import re
import time
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from reportlab.lib import colors

from workloop.errors import RenderError
from workloop.models.report_models import DayGroup, ReportData, ReportItem
from workloop.services import pdf_service
from workloop.services.pdf_service import marker_color, render, render_report

GENERATED_ON = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


def _report_data(groups=None) -> ReportData:
    return ReportData(
        project_id="p1",
        project_name="Acme Portal",
        client_name="Acme Corp",
        window_start=datetime(2026, 10, 10, 9, 0, tzinfo=timezone.utc),
        window_end=datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc),
        start_date="Oct 10, 2026",
        end_date="Oct 17, 2026",
        total_hours=4,
        activity_count=sum(len(g.items) for g in groups or []),
        activities=groups or [],
    )


def _page_count(document: bytes) -> int:
    return len(re.findall(rb"/Type /Page(?!s)", document))


def _busy_week() -> list:
    return [
        DayGroup(
            date="Oct 12, 2026",
            items=[
                ReportItem(type="commit", title="feat: login", description="acme/portal@main", user="Ada", time="09:15 AM"),
                ReportItem(type="check_in", title="Daily Check-in", description="Built login " * 30, user="Ada", time="05:30 PM"),
            ],
        ),
        DayGroup(
            date="Oct 13, 2026",
            items=[ReportItem(type="calendar", title="Sprint review", user="Grace")],
        ),
    ]


class TestRender:
    def test_produces_pdf_bytes(self) -> None:
        document = render(_report_data(_busy_week()), generated_on=GENERATED_ON)
        assert document.startswith(b"%PDF")
        assert document.rstrip().endswith(b"%%EOF")

    def test_deterministic_with_pinned_timestamp(self) -> None:
        data = _report_data(_busy_week())
        assert render(data, generated_on=GENERATED_ON) == render(data, generated_on=GENERATED_ON)

    def test_timestamp_changes_output(self) -> None:
        data = _report_data(_busy_week())
        later = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
        assert render(data, generated_on=GENERATED_ON) != render(data, generated_on=later)

    def test_empty_window_renders_valid_document(self) -> None:
        document = render(_report_data([]), generated_on=GENERATED_ON)
        assert document.startswith(b"%PDF")
        assert len(document) > 500

    def test_missing_optional_fields(self) -> None:
        groups = [DayGroup(date="Oct 12, 2026", items=[ReportItem(type="manual", title="Call")])]
        assert render(_report_data(groups), generated_on=GENERATED_ON).startswith(b"%PDF")

    def test_long_log_spans_pages(self) -> None:
        items = [ReportItem(type="commit", title=f"commit {i}", user="Ada", time="10:00 AM") for i in range(120)]
        short = render(_report_data([DayGroup(date="Oct 12, 2026", items=items[:2])]), generated_on=GENERATED_ON)
        long = render(_report_data([DayGroup(date="Oct 12, 2026", items=items)]), generated_on=GENERATED_ON)
        assert _page_count(long) > _page_count(short) == 1

    def test_input_not_mutated(self) -> None:
        data = _report_data(_busy_week())
        before = data.model_dump()
        render(data, generated_on=GENERATED_ON)
        assert data.model_dump() == before

    def test_engine_fault_becomes_render_error(self) -> None:
        with patch.object(pdf_service, "_draw_activities", side_effect=ValueError("bad glyph")):
            with pytest.raises(RenderError) as exc_info:
                render(_report_data(_busy_week()), generated_on=GENERATED_ON)
        assert exc_info.value.details["project_id"] == "p1"
        assert exc_info.value.details["window_end"] == "2026-10-17T09:00:00+00:00"


class TestMarkers:
    def test_three_visual_categories(self) -> None:
        assert marker_color("check_in") == colors.HexColor("#22c55e")
        assert marker_color("commit") == colors.HexColor("#3b82f6")
        assert marker_color("calendar") == marker_color("manual")


class TestRenderReport:
    @pytest.mark.asyncio
    async def test_renders_off_loop(self) -> None:
        document = await render_report(_report_data(_busy_week()), timeout=30, generated_on=GENERATED_ON)
        assert document == render(_report_data(_busy_week()), generated_on=GENERATED_ON)

    @pytest.mark.asyncio
    async def test_overrun_raises_render_error(self) -> None:
        def slow_render(data, generated_on=None):
            time.sleep(0.5)
            return b"%PDF"

        with patch.object(pdf_service, "render", slow_render):
            with pytest.raises(RenderError, match="timed out"):
                await render_report(_report_data(), timeout=0.05)
