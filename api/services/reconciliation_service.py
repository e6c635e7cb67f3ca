"""Recompute streak_history from stored submissions and repair drift.

For every user the stored accepted submissions are replayed in order,
grouped by local day, and a running solved counter is carried across
consecutive days. The counter restarts at the day's own count whenever
continuity breaks. Rows whose stored count differs are updated, missing
rows are created, matching rows are left alone, so a second run over
unchanged data writes nothing.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.logger import bound_contextvars, get_logger
from core.telemetry import track_operation
from models import UserSubmission
from repositories.streak_history_repository import StreakHistoryRepository
from repositories.submission_repository import SubmissionRepository
from repositories.user_repository import UserRepository
from schemas import ReconciliationSummary
from services.streaks_service import user_update_lock
from services.timezone_service import (
    datetime_to_timestamp,
    get_iana_timezone,
    is_next_day,
    is_same_day,
    local_date,
)

logger = get_logger(__name__)

MAX_ERROR_MESSAGES = 10
PROGRESS_LOG_EVERY = 100


@dataclass
class DayTotal:
    local_date: date
    count: int
    first_ts: int
    first_problem_at: datetime


@dataclass
class UserReconciliation:
    processed: int = 0
    updated: int = 0


def group_submissions_by_day(
    submissions: Sequence[UserSubmission], timezone: str
) -> list[DayTotal]:
    """Per-day counts, oldest day first. The earliest submission opens the day."""
    days: dict[date, DayTotal] = {}
    for submission in sorted(submissions, key=lambda s: s.submitted_at):
        ts = datetime_to_timestamp(submission.submitted_at) or 0
        day = local_date(ts, timezone)
        total = days.get(day)
        if total is None:
            days[day] = DayTotal(
                local_date=day,
                count=1,
                first_ts=ts,
                first_problem_at=submission.submitted_at,
            )
        else:
            total.count += 1
    return [days[day] for day in sorted(days)]


def accumulate_day_counts(
    days: Sequence[DayTotal], timezone: str
) -> list[tuple[DayTotal, int]]:
    """Pair each day with the running solved count of its unbroken run."""
    result: list[tuple[DayTotal, int]] = []
    accumulated = 0
    previous: DayTotal | None = None
    for day in days:
        if previous is not None and not (
            is_next_day(day.first_ts, previous.first_ts, timezone)
            or is_same_day(day.first_ts, previous.first_ts, timezone)
        ):
            accumulated = 0
        accumulated += day.count
        result.append((day, accumulated))
        previous = day
    return result


async def reconcile_user_history(
    db: AsyncSession, user_id: str, timezone: str | None
) -> UserReconciliation:
    """Bring one user's history rows in line with their stored submissions.

    Runs under the same per-user lock as streak updates and commits before
    releasing it.
    """
    tz = get_iana_timezone(timezone)
    outcome = UserReconciliation()

    async with user_update_lock(user_id):
        submissions = await SubmissionRepository(db).get_accepted_by_user(user_id)
        history_repo = StreakHistoryRepository(db)
        stored = await history_repo.get_by_date_for_user(user_id)

        for day, accumulated in accumulate_day_counts(
            group_submissions_by_day(submissions, tz), tz
        ):
            outcome.processed += 1
            existing = stored.get(day.local_date)
            if existing is None:
                await history_repo.create(
                    user_id, day.local_date, accumulated, day.first_problem_at
                )
                outcome.updated += 1
            elif existing.problems_solved != accumulated:
                await history_repo.update_counts(
                    existing,
                    problems_solved=accumulated,
                    first_problem_at=day.first_problem_at,
                )
                outcome.updated += 1
        await db.commit()
    return outcome


@track_operation("streak_history_reconciliation")
async def reconcile_all_histories(
    session_maker: async_sessionmaker[AsyncSession],
) -> ReconciliationSummary:
    """Reconcile every user's history, one transaction per user.

    A failing user is rolled back, logged and summarized; the run continues.
    """
    async with session_maker() as session:
        users = [
            (user.id, user.timezone)
            for user in await UserRepository(session).list_all()
        ]

    summary = ReconciliationSummary(total_users=len(users))
    logger.info("reconcile.started", total_users=summary.total_users)

    for index, (user_id, timezone) in enumerate(users, start=1):
        with bound_contextvars(batch_user_id=user_id):
            async with session_maker() as session:
                try:
                    outcome = await reconcile_user_history(session, user_id, timezone)
                except Exception as e:
                    await session.rollback()
                    summary.errors += 1
                    if len(summary.error_messages) < MAX_ERROR_MESSAGES:
                        summary.error_messages.append(f"user {user_id}: {e}")
                    logger.exception("reconcile.user.failed")
                    continue

        summary.processed += outcome.processed
        summary.updated += outcome.updated
        if index % PROGRESS_LOG_EVERY == 0:
            logger.info(
                "reconcile.progress",
                users_done=index,
                total_users=summary.total_users,
                updated=summary.updated,
            )

    logger.info(
        "reconcile.completed",
        total_users=summary.total_users,
        processed=summary.processed,
        updated=summary.updated,
        errors=summary.errors,
    )
    return summary
