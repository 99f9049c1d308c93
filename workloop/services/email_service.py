"""
Email Service — delivers weekly reports over SMTP.

Uses ``aiosmtplib``. An SMTP connection is opened lazily on first send and
reused by later sends on the same event loop; sends sharing a connection are
serialized behind an ``asyncio.Lock`` because a single SMTP session cannot
interleave messages.
Outside production an unconfigured host falls back to a local development
relay (MailHog, smtp4dev...) on ``localhost:1025``.
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Dict, Optional, Union

import aiosmtplib

from workloop.config import Settings
from workloop.errors import DeliveryError
from workloop.logger import get_logger
from workloop.models.report_models import DeliveryReceipt

logger = get_logger(__name__)

_DEV_HOST = "localhost"
_DEV_PORT = 1025


def report_filename(project_name: str, timestamp_ms: Optional[int] = None) -> str:
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"Report-{'-'.join(project_name.split())}-{stamp}.pdf"


def build_message(
    sender: str,
    to: str,
    project_name: str,
    document: Union[bytes, str],
    date_range: str,
) -> MIMEMultipart:
    """
    Compose the report email.

    ``bytes`` documents are attached; a ``str`` document is treated as the
    URL of the hosted PDF and linked from the body instead.
    """
    message = MIMEMultipart("mixed")
    message["From"] = sender
    message["To"] = to
    message["Subject"] = f"Weekly Report: {project_name} ({date_range})"
    message["Message-ID"] = make_msgid(domain="workloop.dev")

    html = (
        '<div style="font-family: sans-serif; padding: 20px;">'
        "<h2>Weekly Report Ready</h2>"
        f"<p>Here is your progress report for <strong>{project_name}</strong> covering {date_range}.</p>"
    )
    if isinstance(document, str):
        html += f'<p>You can download the PDF here: <a href="{document}">Download Report</a></p>'
    else:
        html += "<p>Please find the PDF attached.</p>"
    html += '<br><p style="color: #666; font-size: 12px;">Powered by WorkLoop</p></div>'

    body = MIMEMultipart("alternative")
    body.attach(MIMEText(f"Your weekly progress report for {project_name} is ready.", "plain"))
    body.attach(MIMEText(html, "html"))
    message.attach(body)

    if not isinstance(document, str):
        attachment = MIMEApplication(document, _subtype="pdf")
        attachment.add_header("Content-Disposition", "attachment", filename=report_filename(project_name))
        message.attach(attachment)

    return message


@dataclass
class _LoopTransport:
    """SMTP state owned by one event loop."""

    lock: asyncio.Lock
    client: Optional[aiosmtplib.SMTP] = None


class EmailService:
    """
    Lazily connected SMTP sender.

    A connection and its lock belong to the event loop that opened them. The
    API process runs a single loop and keeps one connection for its whole
    lifetime; Dramatiq worker threads each run jobs under their own loop and
    get their own connection, released by ``release_loop`` when the job ends.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._guard = threading.Lock()
        self._transports: Dict[asyncio.AbstractEventLoop, _LoopTransport] = {}

    def _loop_transport(self) -> _LoopTransport:
        loop = asyncio.get_running_loop()
        with self._guard:
            for stale in [other for other in self._transports if other.is_closed()]:
                logger.warning("Dropping SMTP connection of a closed event loop")
                del self._transports[stale]
            state = self._transports.get(loop)
            if state is None:
                state = self._transports[loop] = _LoopTransport(lock=asyncio.Lock())
            return state

    def _new_client(self) -> aiosmtplib.SMTP:
        s = self._settings
        if s.smtp_host:
            return aiosmtplib.SMTP(
                hostname=s.smtp_host,
                port=s.smtp_port,
                username=s.smtp_username or None,
                password=s.smtp_password or None,
                start_tls=s.smtp_start_tls,
                timeout=30,
            )
        if s.is_production:
            raise DeliveryError("Production email transport not configured")

        logger.warning("SMTP host not configured, using development relay %s:%d", _DEV_HOST, _DEV_PORT)
        return aiosmtplib.SMTP(hostname=_DEV_HOST, port=_DEV_PORT, start_tls=False, timeout=30)

    async def _connected(self, state: _LoopTransport) -> aiosmtplib.SMTP:
        """Return the loop's connection, (re)connecting when needed. Caller holds ``state.lock``."""
        if state.client is None:
            state.client = self._new_client()
        if not state.client.is_connected:
            await state.client.connect()
        return state.client

    async def send_weekly_report(
        self,
        to: str,
        project_name: str,
        document: Union[bytes, str],
        date_range: str,
    ) -> DeliveryReceipt:
        """
        Send the weekly report to *to*.

        Args:
            to:           Recipient address.
            project_name: Used in the subject, body and attachment name.
            document:     PDF bytes (attached) or the hosted URL (linked).
            date_range:   Human-readable window, e.g. ``Oct 10, 2026 - Oct 17, 2026``.

        Raises:
            DeliveryError: transport not configured, connection/auth/send failure.
        """
        message = build_message(self._settings.email_sender, to, project_name, document, date_range)

        state = self._loop_transport()
        async with state.lock:
            try:
                client = await self._connected(state)
                _errors, response = await client.send_message(message)
            except DeliveryError:
                raise
            except (aiosmtplib.SMTPException, OSError) as exc:
                state.client = None
                raise DeliveryError(f"Failed to send weekly report: {exc}", recipient=to) from exc

        logger.info("Email sent to %s (%s)", to, message["Message-ID"])
        return DeliveryReceipt(
            message_id=message["Message-ID"],
            recipient=to,
            subject=message["Subject"],
            attached=not isinstance(document, str),
            response=str(response),
        )

    async def release_loop(self) -> None:
        """QUIT and forget the connection owned by the running loop."""
        loop = asyncio.get_running_loop()
        with self._guard:
            state = self._transports.pop(loop, None)
        if state is None or state.client is None:
            return
        async with state.lock:
            if state.client.is_connected:
                try:
                    await state.client.quit()
                except (aiosmtplib.SMTPException, OSError):
                    logger.debug("SMTP QUIT failed, dropping connection")
            state.client = None

    async def close(self) -> None:
        await self.release_loop()
