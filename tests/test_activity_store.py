"""
Tests for the activity store: project lookup, commit dedup and the
check-in → activity fan-out.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import IntegrityError

from tests.helpers import NOW
from workloop.errors import DuplicateCheckInError, NotFoundError
from workloop.models.activity_models import ActivitySource, ActivityType, CommitInfo
from workloop.services.activity_store import slugify, start_of_day


def _commit(sha: str, when: datetime = NOW) -> CommitInfo:
    return CommitInfo(hash=sha, message=f"fix: {sha}\n\nbody", repository_name="acme/portal", timestamp=when)


class TestHelpers:
    def test_slugify(self) -> None:
        assert slugify("Acme Portal  v2!") == "acme-portal-v2"
        assert slugify("???") == "project"

    def test_start_of_day_in_utc(self) -> None:
        assert start_of_day(NOW) == datetime(2026, 10, 17, tzinfo=timezone.utc)

    def test_start_of_day_in_local_timezone(self) -> None:
        midnight = start_of_day(NOW, ZoneInfo("America/New_York"))
        assert midnight == datetime(2026, 10, 17, 4, 0, tzinfo=timezone.utc)


class TestProjects:
    @pytest.mark.asyncio
    async def test_lookup_by_internal_then_public_id(self, activity_store, acme) -> None:
        by_id = await activity_store.get_project(acme.id)
        by_uuid = await activity_store.get_project("acme-public-uuid")
        assert by_id == by_uuid
        assert acme.slug == "acme-portal"

    @pytest.mark.asyncio
    async def test_require_project_raises(self, activity_store) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await activity_store.require_project("missing")
        assert exc_info.value.code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_projects_only_active(self, activity_store, acme) -> None:
        projects = await activity_store.list_projects()
        assert [p.id for p in projects] == [acme.id]


class TestCommits:
    @pytest.mark.asyncio
    async def test_replayed_commit_is_skipped(self, activity_store, acme) -> None:
        first = await activity_store.record_commits(acme, "u1", "Ada", [_commit("abc"), _commit("def")])
        replay = await activity_store.record_commits(acme, "u1", "Ada", [_commit("abc")])

        assert len(first) == 2
        assert replay == []
        assert first[0].title == "fix: abc"
        assert first[0].metadata["commitHash"] == "abc"
        assert first[0].source == ActivitySource.GITHUB

    @pytest.mark.asyncio
    async def test_same_commit_for_another_user_is_kept(self, activity_store, acme) -> None:
        await activity_store.record_commits(acme, "u1", "Ada", [_commit("abc")])
        other = await activity_store.record_commits(acme, "u2", "Grace", [_commit("abc")])
        assert len(other) == 1

    @pytest.mark.asyncio
    async def test_activities_without_hash_never_collide(self, activity_store, acme) -> None:
        for _ in range(2):
            record = await activity_store.add_activity(
                acme, "u1", "Ada", ActivityType.MANUAL, ActivitySource.MANUAL, "Call with client", NOW
            )
            assert record is not None

        records = await activity_store.list_activities(acme.id, NOW - timedelta(days=1), NOW)
        assert len(records) == 2


class TestCheckIns:
    @pytest.mark.asyncio
    async def test_check_in_creates_activity_with_hours(self, activity_store, acme) -> None:
        check_in = await activity_store.submit_check_in(
            acme, "u1", "Ada", "Built login", "Write tests", blockers="none", hours_worked=4, now=NOW
        )

        assert check_in.check_in_date == datetime(2026, 10, 17, tzinfo=timezone.utc)
        records = await activity_store.list_activities(acme.id, NOW - timedelta(hours=1), NOW)
        assert len(records) == 1
        activity = records[0]
        assert activity.type == ActivityType.CHECK_IN
        assert activity.title == "Daily Check-in"
        assert activity.description == "Built login"
        assert activity.metadata == {"checkInId": check_in.id, "hours": 4}

    @pytest.mark.asyncio
    async def test_second_check_in_same_day_rejected(self, activity_store, acme) -> None:
        await activity_store.submit_check_in(acme, "u1", "Ada", "a", "b", now=NOW)
        with pytest.raises(DuplicateCheckInError):
            await activity_store.submit_check_in(acme, "u1", "Ada", "c", "d", now=NOW + timedelta(hours=3))

        # The rejected submission must not leave an orphan activity behind.
        records = await activity_store.list_activities(acme.id, NOW - timedelta(days=1), NOW + timedelta(days=1))
        assert len(records) == 1

    @pytest.mark.asyncio
    async def test_next_day_check_in_allowed(self, activity_store, acme) -> None:
        await activity_store.submit_check_in(acme, "u1", "Ada", "a", "b", now=NOW)
        await activity_store.submit_check_in(acme, "u1", "Ada", "c", "d", now=NOW + timedelta(days=1))

    @pytest.mark.asyncio
    async def test_unknown_project_is_not_a_duplicate(self, activity_store, acme) -> None:
        ghost = acme.model_copy(update={"id": "no-such-project"})

        with pytest.raises(IntegrityError) as exc_info:
            await activity_store.submit_check_in(ghost, "u1", "Ada", "a", "b", now=NOW)

        assert not isinstance(exc_info.value, DuplicateCheckInError)
        assert "foreign key" in str(exc_info.value.orig).lower()
