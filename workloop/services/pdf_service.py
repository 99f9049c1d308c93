"""
PDF Service — renders ``ReportData`` into a weekly report document.

Each call builds its own reportlab canvas over an in-memory buffer and
releases it before returning, so concurrent jobs never share a rendering
engine. The canvas is created with ``invariant=1``: given the same data and
the same ``generated_on`` timestamp the output is byte-identical.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from io import BytesIO
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from workloop.errors import RenderError
from workloop.logger import get_logger
from workloop.models.report_models import ReportData, ReportItem
from workloop.services.aggregator import display_date

logger = get_logger(__name__)

BRAND = "WorkLoop"

_MARGIN = 50
_TIME_COLUMN = 60
_BOTTOM = 70

_MARKER_COLORS = {
    "check_in": colors.HexColor("#22c55e"),
    "commit": colors.HexColor("#3b82f6"),
}
_DEFAULT_MARKER = colors.HexColor("#9ca3af")
_MUTED = colors.HexColor("#6b7280")
_TEXT = colors.HexColor("#111827")


def marker_color(item_type: str) -> colors.Color:
    """Green for check-ins, blue for commits, grey for everything else."""
    return _MARKER_COLORS.get(item_type, _DEFAULT_MARKER)


class _ReportCanvas:
    """Cursor-tracking wrapper that starts a new page when the body runs out."""

    def __init__(self, buffer: BytesIO, title: str) -> None:
        self.pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1)
        self.pdf.setTitle(title)
        self.pdf.setAuthor(BRAND)
        self.width, self.height = A4
        self.y = self.height - _MARGIN

    def ensure_space(self, needed: float) -> None:
        if self.y - needed < _BOTTOM:
            self.pdf.showPage()
            self.y = self.height - _MARGIN

    def text(self, x: float, value: str, font: str = "Helvetica", size: int = 10, color=_TEXT) -> None:
        self.pdf.setFont(font, size)
        self.pdf.setFillColor(color)
        self.pdf.drawString(x, self.y, value)

    def wrapped(self, x: float, value: str, font: str = "Helvetica", size: int = 10, color=_TEXT) -> None:
        width = self.width - _MARGIN - x
        for line in simpleSplit(value, font, size, width) or [""]:
            self.ensure_space(size + 4)
            self.text(x, line, font, size, color)
            self.y -= size + 4


def _draw_header(c: _ReportCanvas, data: ReportData) -> None:
    c.text(_MARGIN, BRAND, "Helvetica-Bold", 22)
    c.pdf.setFont("Helvetica-Bold", 14)
    c.pdf.drawRightString(c.width - _MARGIN, c.y, data.project_name)
    c.y -= 18
    c.text(_MARGIN, "Weekly Progress Report", size=11, color=_MUTED)
    c.pdf.setFont("Helvetica", 11)
    c.pdf.drawRightString(c.width - _MARGIN, c.y, data.client_name)
    c.y -= 14
    c.pdf.setStrokeColor(colors.HexColor("#e5e7eb"))
    c.pdf.line(_MARGIN, c.y, c.width - _MARGIN, c.y)
    c.y -= 30


def _draw_stats(c: _ReportCanvas, data: ReportData) -> None:
    c.text(_MARGIN, "REPORTING PERIOD", "Helvetica-Bold", 9, colors.HexColor("#2563eb"))
    c.text(300, "TOTAL HOURS", "Helvetica-Bold", 9, colors.HexColor("#16a34a"))
    c.text(420, "ACTIVITIES", "Helvetica-Bold", 9, colors.HexColor("#16a34a"))
    c.y -= 20
    c.text(_MARGIN, data.date_range, "Helvetica-Bold", 12)
    c.text(300, f"{data.total_hours:g}h", "Helvetica-Bold", 18)
    c.text(420, str(data.activity_count), "Helvetica-Bold", 18)
    c.y -= 40


def _draw_item(c: _ReportCanvas, item: ReportItem) -> None:
    c.ensure_space(40)
    body_x = _MARGIN + _TIME_COLUMN + 14

    if item.time:
        c.pdf.setFont("Helvetica", 8)
        c.pdf.setFillColor(_MUTED)
        c.pdf.drawRightString(_MARGIN + _TIME_COLUMN, c.y, item.time)

    c.pdf.setFillColor(marker_color(item.type))
    c.pdf.circle(_MARGIN + _TIME_COLUMN + 6, c.y + 3, 3, stroke=0, fill=1)

    c.wrapped(body_x, item.title, "Helvetica-Bold", 10)
    if item.description:
        c.wrapped(body_x, item.description, size=8, color=colors.HexColor("#4b5563"))
    c.wrapped(body_x, item.user, size=8, color=_MUTED)
    c.y -= 8


def _draw_activities(c: _ReportCanvas, data: ReportData) -> None:
    c.text(_MARGIN, "Activity Log", "Helvetica-Bold", 13)
    c.y -= 22

    if not data.activities:
        c.text(_MARGIN, "No activity recorded in this period.", "Helvetica-Oblique", 10, _MUTED)
        c.y -= 20
        return

    for day in data.activities:
        c.ensure_space(60)
        c.text(_MARGIN, day.date, "Helvetica-Bold", 10, _MUTED)
        c.y -= 18
        for item in day.items:
            _draw_item(c, item)
        c.y -= 6


def _draw_footer(c: _ReportCanvas, generated_on: datetime) -> None:
    c.pdf.setFont("Helvetica", 8)
    c.pdf.setFillColor(colors.HexColor("#9ca3af"))
    c.pdf.drawCentredString(
        c.width / 2,
        _BOTTOM - 30,
        f"Generated automatically by {BRAND} on {display_date(generated_on)}",
    )


def render(data: ReportData, generated_on: Optional[datetime] = None) -> bytes:
    """
    Render the weekly report PDF.

    Args:
        data:         Aggregated report data (not modified).
        generated_on: Timestamp printed in the footer; defaults to now.

    Returns:
        The PDF document as bytes.

    Raises:
        RenderError: reportlab failed to build the document.
    """
    generated_on = generated_on or datetime.now(timezone.utc)
    buffer = BytesIO()
    try:
        c = _ReportCanvas(buffer, f"Weekly Report - {data.project_name}")
        _draw_header(c, data)
        _draw_stats(c, data)
        _draw_activities(c, data)
        _draw_footer(c, generated_on)
        c.pdf.save()
        return buffer.getvalue()
    except Exception as exc:
        raise RenderError(
            f"Failed to render report for {data.project_name}: {exc}",
            project_id=data.project_id,
            window_start=data.window_start,
            window_end=data.window_end,
        ) from exc
    finally:
        buffer.close()


async def render_report(
    data: ReportData,
    timeout: float,
    generated_on: Optional[datetime] = None,
) -> bytes:
    """
    Render off the event loop, bounded by *timeout* seconds.

    A render that overruns is abandoned (the worker thread cannot be
    interrupted) and reported as ``RenderError``.
    """
    try:
        document = await asyncio.wait_for(asyncio.to_thread(render, data, generated_on), timeout)
    except asyncio.TimeoutError as exc:
        raise RenderError(
            f"Rendering timed out after {timeout:g}s",
            project_id=data.project_id,
            window_start=data.window_start,
            window_end=data.window_end,
        ) from exc

    logger.info("Rendered report for project %s (%d bytes)", data.project_id, len(document))
    return document
