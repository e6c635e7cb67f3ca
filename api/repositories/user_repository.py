"""User repository for streak state reads and writes."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import User


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: str) -> User | None:
        """Get a user by their ID."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_leetcode_username(self, username: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.leetcode_username == username)
        )
        return result.scalar_one_or_none()

    async def list_ids(self) -> list[str]:
        """IDs of every tracked user, in a stable order for batch jobs."""
        result = await self.db.execute(select(User.id).order_by(User.id))
        return list(result.scalars().all())

    async def list_all(self) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    async def create(
        self,
        user_id: str,
        leetcode_username: str,
        timezone: str | None = None,
    ) -> User:
        user = User(
            id=user_id,
            leetcode_username=leetcode_username,
            timezone=timezone,
            current_streak=0,
            longest_streak=0,
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def update_streak(
        self,
        user: User,
        *,
        current_streak: int,
        last_problem_solved_at: datetime | None,
    ) -> User:
        """Persist a new streak value; longest_streak only ever grows."""
        user.current_streak = current_streak
        user.longest_streak = max(user.longest_streak or 0, current_streak)
        user.last_problem_solved_at = last_problem_solved_at
        await self.db.flush()
        return user

    async def update_timezone(self, user: User, timezone: str) -> User:
        user.timezone = timezone
        await self.db.flush()
        return user

    async def reset_streak(self, user: User) -> User:
        user.current_streak = 0
        user.last_problem_solved_at = None
        await self.db.flush()
        return user
