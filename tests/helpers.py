"""Builders shared by the test modules."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

from workloop.config import Settings
from workloop.models.activity_models import ActivityRecord, ActivitySource, ActivityType
from workloop.models.report_models import DeliveryReceipt

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'workloop.db'}",
        "redis_url": "",
        "cloudinary_cloud_name": "",
        "cloudinary_api_key": "",
        "cloudinary_api_secret": "",
        "smtp_host": "",
        "app_env": "test",
        "timezone": "UTC",
        "default_recipient": "client@example.com",
        "scheduler_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_record(
    activity_date: datetime,
    type: ActivityType = ActivityType.COMMIT,
    title: str = "fix: resolve flaky test",
    user_id: str = "u1",
    user_name: str = "Ada",
    hours: Optional[object] = None,
    description: Optional[str] = None,
) -> ActivityRecord:
    metadata = {} if hours is None else {"hours": hours}
    return ActivityRecord(
        id=f"a-{title}-{activity_date.isoformat()}",
        organization_id="org-1",
        project_id="p1",
        user_id=user_id,
        user_name=user_name,
        type=type,
        source=ActivitySource.GITHUB if type == ActivityType.COMMIT else ActivitySource.MANUAL,
        title=title,
        description=description,
        metadata=metadata,
        activity_date=activity_date,
        created_at=activity_date,
    )


def fake_mailer() -> MagicMock:
    mailer = MagicMock()
    mailer.send_weekly_report = AsyncMock(
        side_effect=lambda to, project_name, document, date_range: DeliveryReceipt(
            message_id="<test@workloop.dev>",
            recipient=to,
            subject=f"Weekly Report: {project_name} ({date_range})",
            attached=not isinstance(document, str),
        )
    )
    mailer.close = AsyncMock()
    return mailer


def fake_uploader(enabled: bool = False, url: str = "https://res.cloudinary.test/report.pdf") -> MagicMock:
    uploader = MagicMock()
    uploader.enabled = enabled
    uploader.upload = AsyncMock(return_value=url)
    return uploader
