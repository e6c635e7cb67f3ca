"""Property-based tests for the streak engine and day bucketing using Hypothesis.

These verify invariants that must hold for any batch of submissions,
complementing the example-based tests.
"""

import asyncio

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from services.streak_calculation_service import calculate_streak
from services.timezone_service import (
    OFFSET_TO_IANA,
    format_day,
    is_next_day,
    is_same_day,
    local_date,
)
from tests.factories import BASE_TS, DAY, solve
from tests.fakes import InMemoryHistoryStore, InMemorySubmissionStore

pytestmark = pytest.mark.unit

# =============================================================================
# Custom Strategies
# =============================================================================

timestamps = st.integers(min_value=BASE_TS - 365 * DAY, max_value=BASE_TS + 365 * DAY)
fixed_offset_zones = st.sampled_from(sorted(set(OFFSET_TO_IANA.values())))
zones = st.sampled_from(["UTC", "Asia/Tokyo", "America/New_York", "Europe/Madrid"])


@st.composite
def submission_batches(draw, max_size: int = 30):
    """Accepted submissions over ~2 weeks drawn from a small problem pool."""
    size = draw(st.integers(min_value=0, max_value=max_size))
    return [
        solve(
            f"Problem {draw(st.integers(min_value=0, max_value=15))}",
            BASE_TS + draw(st.integers(min_value=0, max_value=14 * DAY)),
        )
        for _ in range(size)
    ]


hypothesis_settings = settings(
    max_examples=100,
    suppress_health_check=[HealthCheck.too_slow],
)


def run_engine(submissions, timezone, submission_store, history_store, **state):
    return asyncio.run(
        calculate_streak(
            "user_1",
            submissions,
            timezone=timezone,
            initial_streak=state.get("initial_streak", 0),
            last_solved_at_ts=state.get("last_solved_at_ts"),
            initial_daily_count=state.get("initial_daily_count", 0),
            first_problem_at_ts=state.get("first_problem_at_ts"),
            submission_store=submission_store,
            history_store=history_store,
        )
    )


# =============================================================================
# Day bucketing
# =============================================================================


class TestDayBucketing:
    @given(ts=timestamps, tz=zones)
    @hypothesis_settings
    def test_same_instant_is_same_day_never_next_day(self, ts: int, tz: str):
        assert is_same_day(ts, ts, tz)
        assert not is_next_day(ts, ts, tz)

    @given(ts=timestamps, tz=zones)
    @hypothesis_settings
    def test_bucketing_is_deterministic(self, ts: int, tz: str):
        assert format_day(ts, tz) == format_day(ts, tz)
        assert format_day(ts, tz) == local_date(ts, tz).isoformat()

    @given(ts=timestamps, tz=fixed_offset_zones)
    @hypothesis_settings
    def test_twenty_four_hours_later_is_next_day(self, ts: int, tz: str):
        assert is_next_day(ts + DAY, ts, tz)
        assert not is_next_day(ts, ts + DAY, tz)


# =============================================================================
# Engine invariants
# =============================================================================


class TestEngineInvariants:
    @given(batch=submission_batches(), tz=zones)
    @hypothesis_settings
    def test_one_history_write_per_local_day(self, batch, tz: str):
        history = InMemoryHistoryStore()

        result = run_engine(batch, tz, InMemorySubmissionStore(), history)

        days = {local_date(s.timestamp, tz) for s in batch}
        assert history.upserts == len(days)
        assert {r.local_date for r in result.history} == days

    @given(batch=submission_batches(), tz=zones)
    @hypothesis_settings
    def test_streak_bounded_by_novel_days(self, batch, tz: str):
        result = run_engine(
            batch, tz, InMemorySubmissionStore(), InMemoryHistoryStore()
        )

        assert 0 <= result.streak <= len({local_date(s.timestamp, tz) for s in batch})
        assert result.novel_count == len({s.title_slug for s in batch})

    @given(batch=submission_batches(), tz=zones)
    @hypothesis_settings
    def test_second_run_with_carried_state_is_noop(self, batch, tz: str):
        submissions = InMemorySubmissionStore()
        history = InMemoryHistoryStore()
        first = run_engine(batch, tz, submissions, history)
        rows = dict(history.rows)
        last_ts = int(first.last_solved_at.timestamp()) if first.last_solved_at else None

        second = run_engine(
            batch,
            tz,
            submissions,
            history,
            initial_streak=first.streak,
            last_solved_at_ts=last_ts,
        )

        assert second.streak == first.streak
        assert second.last_solved_at == first.last_solved_at
        assert history.rows == rows

    @given(days=st.integers(min_value=1, max_value=30), tz=fixed_offset_zones)
    @hypothesis_settings
    def test_consecutive_novel_days_count_up(self, days: int, tz: str):
        batch = [solve(f"Problem {i}", BASE_TS + 12 * 3600 + i * DAY) for i in range(days)]

        result = run_engine(
            batch, tz, InMemorySubmissionStore(), InMemoryHistoryStore()
        )

        assert result.streak == days

    @given(ts=timestamps, streak=st.integers(min_value=1, max_value=500))
    @hypothesis_settings
    def test_two_day_gap_resets_to_one(self, ts: int, streak: int):
        result = run_engine(
            [solve("Fresh Problem", ts + 2 * DAY)],
            "UTC",
            InMemorySubmissionStore(),
            InMemoryHistoryStore(),
            initial_streak=streak,
            last_solved_at_ts=ts,
        )

        assert result.streak == 1
