"""Streak calculation engine.

Turns a batch of LeetCode acceptance events into an updated streak value,
a new last-processed instant, and one streak_history upsert per local day
touched.

Rules:
- Only accepted submissions newer than the last processed instant count.
- A day counts toward the streak only if it contains a problem the user has
  never solved before (a "novel" problem). Re-submissions still add to the
  day's solved count in history.
- Streak 0 -> 1 on the first novel day. The next calendar day -> +1.
  The same day -> unchanged. Any larger gap -> back to 1.

Everything the engine needs arrives as arguments (including the carried-over
"problems solved today" count), so one call is a pure function of its inputs
plus the two stores it writes through.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Protocol

from core.logger import get_logger
from core.telemetry import track_operation
from schemas import HistoryRecord, LeetCodeSubmission
from services.timezone_service import (
    format_day,
    is_next_day,
    is_same_day,
    local_date,
    timestamp_to_datetime,
)

logger = get_logger(__name__)


class SubmissionStore(Protocol):
    """Novelty check and persistence for first-time solves."""

    async def find_existing_slugs(
        self, user_id: str, title_slugs: Iterable[str]
    ) -> set[str]: ...

    async def create(self, user_id: str, submission: LeetCodeSubmission) -> Any: ...


class StreakHistoryStore(Protocol):
    """Idempotent per-(user, local day) history upsert."""

    async def upsert(
        self,
        user_id: str,
        local_date: date,
        problems_solved: int,
        first_problem_at: datetime,
    ) -> Any: ...


@dataclass(frozen=True)
class StreakComputation:
    """Outcome of one engine run."""

    streak: int
    last_solved_at: datetime | None
    history: list[HistoryRecord] = field(default_factory=list)
    novel_count: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.history)


def select_new_accepted(
    submissions: Iterable[LeetCodeSubmission], last_solved_at_ts: int
) -> list[LeetCodeSubmission]:
    """Accepted submissions strictly newer than the last processed instant, oldest first."""
    return sorted(
        (s for s in submissions if s.is_accepted and s.timestamp > last_solved_at_ts),
        key=lambda s: s.timestamp,
    )


def group_by_local_day(
    submissions: Sequence[LeetCodeSubmission], timezone: str
) -> dict[str, list[LeetCodeSubmission]]:
    """Bucket chronologically sorted submissions by YYYY-MM-DD in ``timezone``."""
    by_day: dict[str, list[LeetCodeSubmission]] = defaultdict(list)
    for submission in submissions:
        by_day[format_day(submission.timestamp, timezone)].append(submission)
    return dict(by_day)


def next_streak_value(
    current_streak: int,
    day_ts: int,
    last_active_ts: int,
    timezone: str,
) -> int:
    """Streak after a day that contains at least one novel problem."""
    if current_streak == 0:
        return 1
    if last_active_ts and is_next_day(day_ts, last_active_ts, timezone):
        return current_streak + 1
    if last_active_ts and is_same_day(day_ts, last_active_ts, timezone):
        # Already credited for this day
        return current_streak
    return 1


@track_operation("streak_calculation")
async def calculate_streak(
    user_id: str,
    submissions: Iterable[LeetCodeSubmission],
    *,
    timezone: str,
    initial_streak: int,
    last_solved_at_ts: int | None,
    initial_daily_count: int,
    first_problem_at_ts: int | None,
    submission_store: SubmissionStore,
    history_store: StreakHistoryStore,
) -> StreakComputation:
    """Process new submissions and compute the updated streak.

    Args:
        user_id: Owner of the submissions.
        submissions: Raw events from the submission source, any order.
        timezone: IANA zone used for day bucketing (already normalized).
        initial_streak: Streak stored before this run.
        last_solved_at_ts: Last processed instant (Unix seconds); None or 0
            means nothing was processed yet.
        initial_daily_count: Solved count already recorded for the day of
            ``last_solved_at_ts``; 0 if the latest history row is for
            another day.
        first_problem_at_ts: Start of the segment recorded in the latest
            history row, used while still on the same day.
        submission_store: Novelty lookup and persistence of first solves.
        history_store: Per-day history upserts.

    Returns:
        StreakComputation. When no submission survives filtering the inputs
        come back unchanged and nothing is written.
    """
    last_ts = last_solved_at_ts or 0

    valid = select_new_accepted(submissions, last_ts)
    if not valid:
        return StreakComputation(
            streak=initial_streak,
            last_solved_at=timestamp_to_datetime(last_ts) if last_ts > 0 else None,
        )

    by_day = group_by_local_day(valid, timezone)

    # One query for every slug in the batch
    known_slugs = set(
        await submission_store.find_existing_slugs(
            user_id, {s.title_slug for s in valid}
        )
    )

    current_streak = initial_streak
    last_processed_ts = last_ts
    last_active_ts = last_ts
    segment_start_ts = first_problem_at_ts or 0
    problems_today = initial_daily_count
    novel_count = 0
    history: list[HistoryRecord] = []

    for day_label in sorted(by_day):
        day_submissions = by_day[day_label]
        first_ts = day_submissions[0].timestamp

        if last_processed_ts == 0 or not is_same_day(
            first_ts, last_processed_ts, timezone
        ):
            last_active_ts = last_processed_ts
            problems_today = 0
            segment_start_ts = first_ts
        elif not segment_start_ts:
            segment_start_ts = first_ts

        novel = [s for s in day_submissions if s.title_slug not in known_slugs]
        problems_today += len(day_submissions)

        if novel:
            current_streak = next_streak_value(
                current_streak, first_ts, last_active_ts, timezone
            )

        for submission in novel:
            # The same new problem can be accepted twice in one day
            if submission.title_slug in known_slugs:
                continue
            await submission_store.create(user_id, submission)
            known_slugs.add(submission.title_slug)
            novel_count += 1

        last_processed_ts = day_submissions[-1].timestamp

        record = HistoryRecord(
            user_id=user_id,
            local_date=local_date(last_processed_ts, timezone),
            problems_solved=problems_today,
            first_problem_at=timestamp_to_datetime(segment_start_ts),
        )
        await history_store.upsert(
            record.user_id,
            record.local_date,
            record.problems_solved,
            record.first_problem_at,
        )
        history.append(record)

    logger.debug(
        "streak.calculated",
        user_id=user_id,
        days=len(history),
        novel=novel_count,
        initial_streak=initial_streak,
        streak=current_streak,
    )

    return StreakComputation(
        streak=current_streak,
        last_solved_at=timestamp_to_datetime(last_processed_ts),
        history=history,
        novel_count=novel_count,
    )
