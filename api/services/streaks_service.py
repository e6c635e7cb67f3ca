"""Streak update orchestration.

Entry points used by routes, the CLI and the background refresher:
- update_streak: fetch recent LeetCode submissions and advance one user's streak
- rebuild_streak: recompute from the whole fetched window, ignoring last-processed state
- rebuild_streak_from_store: replay already-stored submissions (no upstream call)
- update_all_streaks: sequential batch over every user
- streak_refresh_loop: background timer around update_all_streaks
- streak_end_of_day_loop: one more batch update every day at 23:59 UTC

At most one update per user is in flight at a time (per-user asyncio.Lock),
because novelty is decided and persisted as a side effect of the update.
Each entry point commits its own session before releasing the lock, so the
next holder always reads committed state.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import get_settings
from core.logger import bound_contextvars, get_logger
from core.telemetry import add_custom_attribute, log_business_event, track_operation
from core.wide_event import set_wide_event_fields
from models import StreakHistory, User
from repositories.streak_history_repository import StreakHistoryRepository
from repositories.submission_repository import SubmissionRepository
from repositories.user_repository import UserRepository
from schemas import (
    BatchUpdateSummary,
    LeetCodeSubmission,
    StreakUpdateResponse,
)
from services.leetcode_service import get_recent_ac_submissions
from services.streak_calculation_service import StreakComputation, calculate_streak
from services.timezone_service import (
    datetime_to_timestamp,
    get_iana_timezone,
    local_date,
)

logger = get_logger(__name__)

SubmissionFetcher = Callable[[str, int], Awaitable[list[LeetCodeSubmission]]]

END_OF_DAY_RUN_AT = time(23, 59)

_user_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


class UserNotFoundError(Exception):
    """No user with the given id."""

    def __init__(self, user_id: str):
        super().__init__(f"User with id {user_id} not found")
        self.user_id = user_id


def get_user_lock(user_id: str) -> asyncio.Lock:
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock


@asynccontextmanager
async def user_update_lock(user_id: str) -> AsyncIterator[None]:
    """Serialize streak updates for one user across routes, CLI and scheduler."""
    lock = get_user_lock(user_id)
    async with lock:
        yield


class ReplaySubmissionStore:
    """In-memory SubmissionStore for replays of already-stored submissions.

    Starts empty, so the first occurrence of each slug in the replay is
    treated as novel and nothing is written back to user_submissions.
    """

    def __init__(self) -> None:
        self.slugs: set[str] = set()

    async def find_existing_slugs(
        self, user_id: str, title_slugs: Iterable[str]
    ) -> set[str]:
        return self.slugs & set(title_slugs)

    async def create(self, user_id: str, submission: LeetCodeSubmission) -> Any:
        self.slugs.add(submission.title_slug)


async def _get_user_or_raise(db: AsyncSession, user_id: str) -> User:
    user = await UserRepository(db).get_by_id(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def _carry_over(
    latest: StreakHistory | None, last_ts: int | None, timezone: str
) -> tuple[int, int | None]:
    """Solved count and segment start to carry into the engine.

    The count only carries over when the latest history row is for the same
    local day as the last processed submission.
    """
    if latest is None:
        return 0, None
    first_problem_at_ts = datetime_to_timestamp(latest.first_problem_at)
    latest_day: date = latest.local_date
    if last_ts and local_date(last_ts, timezone) == latest_day:
        return latest.problems_solved, first_problem_at_ts
    return 0, first_problem_at_ts


async def _apply_computation(
    db: AsyncSession, user: User, computation: StreakComputation
) -> None:
    if not computation.changed:
        return
    await UserRepository(db).update_streak(
        user,
        current_streak=computation.streak,
        last_problem_solved_at=computation.last_solved_at,
    )


async def get_streak(db: AsyncSession, user_id: str) -> User:
    """Current streak state for a user."""
    return await _get_user_or_raise(db, user_id)


async def reset_streak(db: AsyncSession, user_id: str) -> User:
    """Reset a user's streak to zero and forget the last processed instant."""
    async with user_update_lock(user_id):
        user = await _get_user_or_raise(db, user_id)
        await UserRepository(db).reset_streak(user)
        await db.commit()
    logger.info("streak.reset", user_id=user_id)
    return user


async def get_history(
    db: AsyncSession, user_id: str, *, limit: int | None = None
) -> list[StreakHistory]:
    await _get_user_or_raise(db, user_id)
    rows = await StreakHistoryRepository(db).get_for_user(user_id, limit=limit)
    return list(rows)


@track_operation("streak_update")
async def update_streak(
    db: AsyncSession,
    user_id: str,
    *,
    fetch: SubmissionFetcher | None = None,
) -> StreakUpdateResponse:
    """Fetch the user's recent accepted submissions and advance their streak.

    The session is committed while the per-user lock is still held.

    Raises:
        UserNotFoundError: unknown user id.
        LeetCodeUnavailableError / LeetCodeUserNotFoundError: from the fetch.
    """
    fetch = fetch or get_recent_ac_submissions
    settings = get_settings()

    async with user_update_lock(user_id):
        user = await _get_user_or_raise(db, user_id)
        submissions = await fetch(
            user.leetcode_username, settings.recent_submissions_limit
        )

        if not submissions:
            return StreakUpdateResponse(
                user_id=user.id,
                streak=user.current_streak,
                last_activity_timestamp=datetime_to_timestamp(
                    user.last_problem_solved_at
                ),
            )

        timezone = get_iana_timezone(user.timezone)
        history_repo = StreakHistoryRepository(db)
        latest = await history_repo.get_latest_for_user(user.id)
        last_ts = datetime_to_timestamp(user.last_problem_solved_at)
        daily_count, first_problem_at_ts = _carry_over(latest, last_ts, timezone)

        computation = await calculate_streak(
            user.id,
            submissions,
            timezone=timezone,
            initial_streak=user.current_streak,
            last_solved_at_ts=last_ts,
            initial_daily_count=daily_count,
            first_problem_at_ts=first_problem_at_ts,
            submission_store=SubmissionRepository(db),
            history_store=history_repo,
        )
        await _apply_computation(db, user, computation)
        await db.commit()

    add_custom_attribute("streak.value", computation.streak)
    set_wide_event_fields(streak_user_id=user.id, streak_value=computation.streak)
    if computation.changed:
        log_business_event("streak.updated", computation.streak)
        logger.info(
            "streak.updated",
            user_id=user.id,
            streak=computation.streak,
            days=len(computation.history),
            novel=computation.novel_count,
        )

    return StreakUpdateResponse(
        user_id=user.id,
        streak=computation.streak,
        last_activity_timestamp=datetime_to_timestamp(computation.last_solved_at),
    )


@track_operation("streak_rebuild")
async def rebuild_streak(
    db: AsyncSession,
    user_id: str,
    *,
    timezone: str | None = None,
    fetch: SubmissionFetcher | None = None,
) -> int:
    """Recompute from the start of the fetched window.

    The last processed instant and the carried-over daily count are
    ignored, so every fetched day is re-evaluated and its history row
    rewritten. ``timezone`` overrides the stored zone for this run.
    """
    fetch = fetch or get_recent_ac_submissions
    settings = get_settings()

    async with user_update_lock(user_id):
        user = await _get_user_or_raise(db, user_id)
        submissions = await fetch(
            user.leetcode_username, settings.recent_submissions_limit
        )
        if not submissions:
            return user.current_streak

        computation = await calculate_streak(
            user.id,
            submissions,
            timezone=get_iana_timezone(timezone or user.timezone),
            initial_streak=user.current_streak,
            last_solved_at_ts=None,
            initial_daily_count=0,
            first_problem_at_ts=None,
            submission_store=SubmissionRepository(db),
            history_store=StreakHistoryRepository(db),
        )
        await _apply_computation(db, user, computation)
        await db.commit()

    logger.info("streak.rebuilt", user_id=user.id, streak=computation.streak)
    return computation.streak


@track_operation("streak_rebuild_from_store")
async def rebuild_streak_from_store(db: AsyncSession, user_id: str) -> int:
    """Recompute a user's streak from submissions already in the database.

    No upstream call. The previous last-activity instant is kept when
    there is nothing to replay.
    """
    async with user_update_lock(user_id):
        user = await _get_user_or_raise(db, user_id)
        stored = await SubmissionRepository(db).get_accepted_by_user(user.id)

        submissions = [
            LeetCodeSubmission(
                title=row.title,
                title_slug=row.title_slug,
                timestamp=datetime_to_timestamp(row.submitted_at) or 0,
                status_display=row.status_display,
                lang=row.language,
            )
            for row in stored
        ]

        computation = await calculate_streak(
            user.id,
            submissions,
            timezone=get_iana_timezone(user.timezone),
            initial_streak=0,
            last_solved_at_ts=None,
            initial_daily_count=0,
            first_problem_at_ts=None,
            submission_store=ReplaySubmissionStore(),
            history_store=StreakHistoryRepository(db),
        )
        await UserRepository(db).update_streak(
            user,
            current_streak=computation.streak,
            last_problem_solved_at=computation.last_solved_at
            or user.last_problem_solved_at,
        )
        await db.commit()

    logger.info(
        "streak.rebuilt_from_store",
        user_id=user.id,
        streak=computation.streak,
        replayed=len(submissions),
    )
    return computation.streak


async def update_all_streaks(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    fetch: SubmissionFetcher | None = None,
) -> BatchUpdateSummary:
    """Update every user's streak, one user (and one transaction) at a time.

    A failing user is logged and counted; the batch continues.
    """
    async with session_maker() as session:
        user_ids = await UserRepository(session).list_ids()

    summary = BatchUpdateSummary(total_users=len(user_ids))
    if not user_ids:
        logger.warning("streak.batch.no_users")
        return summary

    for user_id in user_ids:
        with bound_contextvars(batch_user_id=user_id):
            async with session_maker() as session:
                try:
                    await update_streak(session, user_id, fetch=fetch)
                    summary.updated += 1
                except Exception:
                    await session.rollback()
                    summary.errors += 1
                    logger.exception("streak.batch.user_failed")

    logger.info(
        "streak.batch.completed",
        total_users=summary.total_users,
        updated=summary.updated,
        errors=summary.errors,
    )
    return summary


async def streak_refresh_loop(
    session_maker: async_sessionmaker[AsyncSession],
    interval_seconds: int | None = None,
) -> None:
    """Background loop that refreshes every user's streak on a timer.

    Runs forever until cancelled. Failures are logged but do not stop the loop.
    """
    interval = interval_seconds or get_settings().streak_refresh_interval_seconds
    while True:
        started_at = datetime.now()
        try:
            await update_all_streaks(session_maker)
        except Exception:
            logger.exception("streak.background_refresh.failed")
        logger.debug(
            "streak.background_refresh.sleeping",
            started_at=started_at.isoformat(),
            interval_seconds=interval,
        )
        await asyncio.sleep(interval)


def seconds_until_end_of_day_run(now: datetime | None = None) -> float:
    """Seconds from ``now`` (default: current instant) to the next 23:59 UTC."""
    now = (now or datetime.now(UTC)).astimezone(UTC)
    target = datetime.combine(now.date(), END_OF_DAY_RUN_AT, tzinfo=UTC)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def streak_end_of_day_loop(
    session_maker: async_sessionmaker[AsyncSession],
) -> None:
    """Run a final batch update shortly before every UTC midnight.

    Catches activity from the last hours of the day that the interval loop
    would otherwise only see after the day has closed.
    """
    while True:
        delay = seconds_until_end_of_day_run()
        logger.debug("streak.end_of_day_refresh.sleeping", seconds=round(delay))
        await asyncio.sleep(delay)
        try:
            await update_all_streaks(session_maker)
        except Exception:
            logger.exception("streak.end_of_day_refresh.failed")
