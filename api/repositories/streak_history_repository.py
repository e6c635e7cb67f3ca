"""Repository for per-day streak history records."""

from collections.abc import Sequence
from datetime import UTC, date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import StreakHistory
from repositories.utils import log_slow_query, upsert_on_conflict


class StreakHistoryRepository:
    """Repository for StreakHistory operations.

    Exactly one row per (user_id, local_date). ``upsert`` is idempotent:
    writing the same values twice leaves the same stored row.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_latest_for_user(self, user_id: str) -> StreakHistory | None:
        """Most recent history row for a user (by local date)."""
        result = await self.db.execute(
            select(StreakHistory)
            .where(StreakHistory.user_id == user_id)
            .order_by(StreakHistory.local_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_user_and_date(
        self, user_id: str, local_date: date
    ) -> StreakHistory | None:
        result = await self.db.execute(
            select(StreakHistory).where(
                StreakHistory.user_id == user_id,
                StreakHistory.local_date == local_date,
            )
        )
        return result.scalar_one_or_none()

    async def get_for_user(
        self,
        user_id: str,
        *,
        limit: int | None = None,
    ) -> Sequence[StreakHistory]:
        """History rows for a user, newest first."""
        query = (
            select(StreakHistory)
            .where(StreakHistory.user_id == user_id)
            .order_by(StreakHistory.local_date.desc())
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def get_by_date_for_user(self, user_id: str) -> dict[date, StreakHistory]:
        rows = await self.get_for_user(user_id)
        return {row.local_date: row for row in rows}

    @log_slow_query("upsert_streak_history")
    async def upsert(
        self,
        user_id: str,
        local_date: date,
        problems_solved: int,
        first_problem_at: datetime,
    ) -> StreakHistory:
        """Create or update the row for (user_id, local_date).

        Uses INSERT ... ON CONFLICT DO UPDATE for PostgreSQL/SQLite,
        select-then-write for anything else.
        """
        bind = self.db.get_bind()
        dialect = bind.dialect.name if bind else ""

        if dialect in ("postgresql", "sqlite"):
            now = datetime.now(UTC)
            return await upsert_on_conflict(
                self.db,
                StreakHistory,
                values={
                    "user_id": user_id,
                    "local_date": local_date,
                    "problems_solved": problems_solved,
                    "first_problem_at": first_problem_at,
                    "created_at": now,
                    "updated_at": now,
                },
                index_elements=["user_id", "local_date"],
                update_fields=["problems_solved", "first_problem_at", "updated_at"],
            )

        existing = await self.get_by_user_and_date(user_id, local_date)
        if existing:
            return await self.update_counts(
                existing,
                problems_solved=problems_solved,
                first_problem_at=first_problem_at,
            )
        return await self.create(user_id, local_date, problems_solved, first_problem_at)

    async def create(
        self,
        user_id: str,
        local_date: date,
        problems_solved: int,
        first_problem_at: datetime,
    ) -> StreakHistory:
        record = StreakHistory(
            user_id=user_id,
            local_date=local_date,
            problems_solved=problems_solved,
            first_problem_at=first_problem_at,
        )
        self.db.add(record)
        await self.db.flush()
        return record

    async def update_counts(
        self,
        record: StreakHistory,
        *,
        problems_solved: int,
        first_problem_at: datetime,
    ) -> StreakHistory:
        record.problems_solved = problems_solved
        record.first_problem_at = first_problem_at
        await self.db.flush()
        return record
