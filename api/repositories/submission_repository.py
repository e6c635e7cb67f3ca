"""Submission repository: which problems a user has already solved."""

from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import ACCEPTED_STATUS, UserSubmission
from repositories.utils import log_slow_query
from schemas import LeetCodeSubmission
from services.timezone_service import timestamp_to_datetime


class SubmissionRepository:
    """Repository for UserSubmission database operations.

    At most one row exists per (user_id, title_slug), so a lookup by slug
    answers "has this user solved this problem before?".
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("find_submissions_by_user_and_slugs")
    async def find_by_user_and_slugs(
        self, user_id: str, title_slugs: Iterable[str]
    ) -> list[UserSubmission]:
        """Fetch stored submissions matching any of the given slugs in one query."""
        slugs = list(set(title_slugs))
        if not slugs:
            return []
        result = await self.db.execute(
            select(UserSubmission).where(
                UserSubmission.user_id == user_id,
                UserSubmission.title_slug.in_(slugs),
            )
        )
        return list(result.scalars().all())

    async def find_existing_slugs(
        self, user_id: str, title_slugs: Iterable[str]
    ) -> set[str]:
        submissions = await self.find_by_user_and_slugs(user_id, title_slugs)
        return {submission.title_slug for submission in submissions}

    async def create(
        self, user_id: str, submission: LeetCodeSubmission
    ) -> UserSubmission:
        """Record the first accepted submission of a problem."""
        record = UserSubmission(
            user_id=user_id,
            title=submission.title,
            title_slug=submission.title_slug,
            status_display=submission.status_display,
            submitted_at=timestamp_to_datetime(submission.timestamp),
            language=submission.lang or "unknown",
        )
        self.db.add(record)
        await self.db.flush()
        return record

    @log_slow_query("get_accepted_submissions_by_user")
    async def get_accepted_by_user(self, user_id: str) -> list[UserSubmission]:
        """All accepted submissions for a user, oldest first (for replays)."""
        result = await self.db.execute(
            select(UserSubmission)
            .where(
                UserSubmission.user_id == user_id,
                UserSubmission.status_display == ACCEPTED_STATUS,
            )
            .order_by(UserSubmission.submitted_at.asc(), UserSubmission.id.asc())
        )
        return list(result.scalars().all())

    async def count_by_user(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(UserSubmission.id)).where(
                UserSubmission.user_id == user_id
            )
        )
        return result.scalar_one()
