"""API route modules."""

from .health_routes import router as health_router
from .streak_routes import router as streak_router
from .users_routes import router as users_router

__all__ = [
    "health_router",
    "streak_router",
    "users_router",
]
