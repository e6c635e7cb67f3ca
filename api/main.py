"""FastAPI application for the Streak Sync API."""

import asyncio
import logging
from contextlib import asynccontextmanager

import fastapi
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from core.config import get_settings
from core.database import (
    create_engine,
    create_session_maker,
    dispose_engine,
    init_db,
)
from core.logger import configure_logging
from core.ratelimit import limiter, rate_limit_exceeded_handler
from core.telemetry import RequestTimingMiddleware
from routes import health_router, streak_router, users_router
from services.leetcode_service import close_http_client
from services.streaks_service import streak_end_of_day_loop, streak_refresh_loop

configure_logging()
logger = logging.getLogger(__name__)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for unhandled exceptions."""
    logger.exception(
        "unhandled.exception",
        extra={
            "exc_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again."},
    )


async def validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handler for request validation errors."""
    if not isinstance(exc, RequestValidationError):
        return JSONResponse(status_code=500, content={"detail": "Unexpected error"})

    logger.warning(
        "request.validation_error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_count": len(exc.errors()),
        },
    )
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()},
    )


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    """Create DB engine at startup, start the streak refresher, clean up on shutdown."""
    settings = get_settings()
    app.state.engine = create_engine()
    app.state.session_maker = create_session_maker(app.state.engine)

    try:
        async with asyncio.timeout(60):
            await init_db(app.state.engine)
        logger.info("init.complete")
    except TimeoutError:
        logger.error(
            "init.timeout",
            extra={"hint": "Startup hung, check DB connectivity"},
        )
        raise RuntimeError("Application startup timed out")

    background_tasks: list[asyncio.Task] = []
    if settings.streak_refresh_enabled:
        background_tasks.append(
            asyncio.create_task(
                streak_refresh_loop(
                    app.state.session_maker,
                    settings.streak_refresh_interval_seconds,
                )
            )
        )
        background_tasks.append(
            asyncio.create_task(streak_end_of_day_loop(app.state.session_maker))
        )
        logger.info(
            "streak.background_refresh.started",
            extra={"interval_seconds": settings.streak_refresh_interval_seconds},
        )

    try:
        yield
    finally:
        for task in background_tasks:
            if not task.done():
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("background.task.failed")

        await close_http_client()
        await dispose_engine(app.state.engine)


_settings = get_settings()

app = fastapi.FastAPI(
    title="Streak Sync API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if _settings.enable_docs or _settings.debug else None,
    redoc_url="/redoc" if _settings.enable_docs or _settings.debug else None,
    openapi_url=("/openapi.json" if _settings.enable_docs or _settings.debug else None),
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(RequestTimingMiddleware)

app.include_router(health_router)
app.include_router(streak_router)
app.include_router(users_router)
