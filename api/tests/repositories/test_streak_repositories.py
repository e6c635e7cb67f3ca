"""Repository tests against in-memory SQLite.

Covers the novelty lookup, idempotent history upserts and streak writes.
"""

from datetime import UTC, date, datetime

import pytest

from models import StreakHistory
from repositories.streak_history_repository import StreakHistoryRepository
from repositories.submission_repository import SubmissionRepository
from repositories.user_repository import UserRepository
from services.timezone_service import datetime_to_timestamp
from tests.factories import (
    BASE_TS,
    DAY,
    StreakHistoryFactory,
    UserFactory,
    UserSubmissionFactory,
    create_async,
    solve,
)

pytestmark = pytest.mark.integration


def at(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=UTC)


class TestSubmissionRepository:
    async def test_find_existing_slugs_returns_only_known(self, db_session):
        user = await create_async(UserFactory, db_session)
        await create_async(
            UserSubmissionFactory, db_session, user_id=user.id, title="Two Sum"
        )

        repo = SubmissionRepository(db_session)
        known = await repo.find_existing_slugs(user.id, ["two-sum", "3sum"])

        assert known == {"two-sum"}

    async def test_find_existing_slugs_is_scoped_to_user(self, db_session):
        alice = await create_async(UserFactory, db_session)
        bob = await create_async(UserFactory, db_session)
        await create_async(
            UserSubmissionFactory, db_session, user_id=alice.id, title="Two Sum"
        )

        known = await SubmissionRepository(db_session).find_existing_slugs(
            bob.id, ["two-sum"]
        )

        assert known == set()

    async def test_empty_slug_list_skips_query(self, db_session):
        assert await SubmissionRepository(db_session).find_existing_slugs("u", []) == set()

    async def test_create_records_submission(self, db_session):
        user = await create_async(UserFactory, db_session)
        repo = SubmissionRepository(db_session)

        await repo.create(user.id, solve("Valid Parentheses", BASE_TS))

        [stored] = await repo.find_by_user_and_slugs(user.id, ["valid-parentheses"])
        assert stored.title == "Valid Parentheses"
        assert datetime_to_timestamp(stored.submitted_at) == BASE_TS
        assert await repo.count_by_user(user.id) == 1

    async def test_get_accepted_by_user_is_chronological(self, db_session):
        user = await create_async(UserFactory, db_session)
        for title, ts in [("B", BASE_TS + DAY), ("A", BASE_TS), ("C", BASE_TS + 2 * DAY)]:
            await create_async(
                UserSubmissionFactory,
                db_session,
                user_id=user.id,
                title=title,
                submitted_at=at(ts),
            )
        await create_async(
            UserSubmissionFactory,
            db_session,
            user_id=user.id,
            title="Rejected",
            status_display="Wrong Answer",
        )

        rows = await SubmissionRepository(db_session).get_accepted_by_user(user.id)

        assert [r.title for r in rows] == ["A", "B", "C"]


class TestStreakHistoryRepository:
    async def test_upsert_creates_then_updates_same_row(self, db_session):
        user = await create_async(UserFactory, db_session)
        repo = StreakHistoryRepository(db_session)
        day = date(2026, 1, 5)

        first = await repo.upsert(user.id, day, 1, at(BASE_TS))
        second = await repo.upsert(user.id, day, 3, at(BASE_TS))

        assert first.id == second.id
        assert second.problems_solved == 3
        rows = await repo.get_for_user(user.id)
        assert len(rows) == 1

    async def test_upsert_is_idempotent(self, db_session):
        user = await create_async(UserFactory, db_session)
        repo = StreakHistoryRepository(db_session)
        day = date(2026, 1, 5)

        await repo.upsert(user.id, day, 2, at(BASE_TS))
        again = await repo.upsert(user.id, day, 2, at(BASE_TS))

        assert again.problems_solved == 2
        assert datetime_to_timestamp(again.first_problem_at) == BASE_TS

    async def test_get_latest_and_history_order(self, db_session):
        user = await create_async(UserFactory, db_session)
        for offset in (0, 2, 1):
            await create_async(
                StreakHistoryFactory,
                db_session,
                user_id=user.id,
                local_date=date(2026, 1, 5 + offset),
            )
        repo = StreakHistoryRepository(db_session)

        latest = await repo.get_latest_for_user(user.id)
        rows = await repo.get_for_user(user.id, limit=2)

        assert latest is not None
        assert latest.local_date == date(2026, 1, 7)
        assert [r.local_date for r in rows] == [date(2026, 1, 7), date(2026, 1, 6)]

    async def test_get_by_date_for_user(self, db_session):
        user = await create_async(UserFactory, db_session)
        await create_async(
            StreakHistoryFactory,
            db_session,
            user_id=user.id,
            local_date=date(2026, 1, 5),
            problems_solved=4,
        )

        by_date = await StreakHistoryRepository(db_session).get_by_date_for_user(
            user.id
        )

        assert set(by_date) == {date(2026, 1, 5)}
        assert isinstance(by_date[date(2026, 1, 5)], StreakHistory)
        assert by_date[date(2026, 1, 5)].problems_solved == 4

    async def test_latest_is_none_without_history(self, db_session):
        user = await create_async(UserFactory, db_session)
        assert await StreakHistoryRepository(db_session).get_latest_for_user(user.id) is None


class TestUserRepository:
    async def test_update_streak_tracks_longest(self, db_session):
        user = await create_async(UserFactory, db_session, longest_streak=5)
        repo = UserRepository(db_session)

        await repo.update_streak(user, current_streak=3, last_problem_solved_at=at(BASE_TS))
        assert user.longest_streak == 5

        await repo.update_streak(user, current_streak=7, last_problem_solved_at=at(BASE_TS))
        assert user.longest_streak == 7

    async def test_reset_streak(self, db_session):
        user = await create_async(
            UserFactory,
            db_session,
            current_streak=4,
            last_problem_solved_at=at(BASE_TS),
        )

        await UserRepository(db_session).reset_streak(user)

        assert user.current_streak == 0
        assert user.last_problem_solved_at is None

    async def test_create_and_lookup(self, db_session):
        repo = UserRepository(db_session)

        await repo.create("user_42", "leet_42", timezone="+05:00")

        by_id = await repo.get_by_id("user_42")
        by_name = await repo.get_by_leetcode_username("leet_42")
        assert by_id is by_name
        assert by_id.timezone == "+05:00"
        assert by_id.current_streak == 0

    async def test_update_timezone(self, db_session):
        user = await create_async(UserFactory, db_session, timezone=None)

        await UserRepository(db_session).update_timezone(user, "-05:00")

        stored = await UserRepository(db_session).get_by_id(user.id)
        assert stored.timezone == "-05:00"

    async def test_list_ids_is_sorted(self, db_session):
        for user_id in ("user_c", "user_a", "user_b"):
            await create_async(UserFactory, db_session, id=user_id)

        assert await UserRepository(db_session).list_ids() == [
            "user_a",
            "user_b",
            "user_c",
        ]
