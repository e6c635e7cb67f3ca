"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping services focused on
streak rules and routes focused on HTTP handling. The streak engine only
sees the SubmissionStore / StreakHistoryStore protocols, which these
repositories satisfy.
"""

from repositories.streak_history_repository import StreakHistoryRepository
from repositories.submission_repository import SubmissionRepository
from repositories.user_repository import UserRepository
from repositories.utils import log_slow_query

__all__ = [
    "StreakHistoryRepository",
    "SubmissionRepository",
    "UserRepository",
    "log_slow_query",
]
