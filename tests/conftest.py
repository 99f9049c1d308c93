"""
Shared test fixtures.

Sets environment variables *before* any application module is imported
so ``Settings`` can be instantiated without a real ``.env`` file.
"""

import os
from pathlib import Path

import pytest
import pytest_asyncio

# Populate required env vars with safe dummy values for test isolation.
_TEST_ENV = {
    "DATABASE_URL": "sqlite+aiosqlite:///./workloop-test.db",
    "REDIS_URL": "",
    "CLOUDINARY_CLOUD_NAME": "",
    "SMTP_HOST": "",
    "LOG_LEVEL": "DEBUG",
    "APP_ENV": "test",
    "TIMEZONE": "UTC",
    "SCHEDULER_ENABLED": "false",
}

for key, value in _TEST_ENV.items():
    os.environ.setdefault(key, value)

from workloop.config import Settings  # noqa: E402
from workloop.db.database import create_engine, create_session_factory, init_models  # noqa: E402
from workloop.services.activity_store import ActivityStore  # noqa: E402
from workloop.services.report_store import ReportStore  # noqa: E402
from tests.helpers import make_settings  # noqa: E402


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def sessions(test_settings: Settings):
    engine = create_engine(test_settings.database_url)
    await init_models(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def activity_store(sessions) -> ActivityStore:
    return ActivityStore(sessions)


@pytest_asyncio.fixture
async def report_store(sessions) -> ReportStore:
    return ReportStore(sessions)


@pytest_asyncio.fixture
async def acme(activity_store: ActivityStore):
    return await activity_store.create_project(
        organization_id="org-1",
        name="Acme Portal",
        client_name="Acme Corp",
        client_email="owner@acme.test",
        public_id="acme-public-uuid",
    )
