"""Request timing, wide-event emission and optional OpenTelemetry spans.

Tracing is only active when APPLICATIONINSIGHTS_CONNECTION_STRING is set;
otherwise the decorators below only feed the request's wide event.
"""

import os
import time
import uuid
from collections.abc import Awaitable, Callable
from contextlib import nullcontext
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.logger import get_logger
from core.wide_event import (
    add_dependency_timing,
    clear_wide_event,
    get_wide_event,
    init_wide_event,
    set_wide_event_fields,
)

logger = get_logger(__name__)

TELEMETRY_ENABLED = bool(os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING"))

SERVICE_NAME = os.getenv("SERVICE_NAME", "streak-sync-api")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "0.1.0")

if TELEMETRY_ENABLED:
    from opentelemetry import trace
    from opentelemetry.trace import Status, StatusCode

    tracer = trace.get_tracer(__name__)
else:
    trace = None
    tracer = None
    Status = None
    StatusCode = None

P = ParamSpec("P")
R = TypeVar("R")


def instrument_sqlalchemy_engine(engine: Any) -> None:
    """Attach OpenTelemetry query tracing to the engine when telemetry is on."""
    if not TELEMETRY_ENABLED:
        return

    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
        logger.info("sqlalchemy.instrumentation.enabled")
    except Exception as e:
        logger.warning("sqlalchemy.instrumentation.failed", error=str(e))


class RequestTimingMiddleware:
    """Adds timing headers and emits one wide event per request.

    Errors and slow requests are always logged; fast successful requests
    are only logged when they touched a user's streak.
    """

    SLOW_REQUEST_MS = 1000

    def __init__(self, app: ASGIApp):
        self.app = app

    def _should_emit(self, status: int | None, duration_ms: float) -> bool:
        return (
            status is None
            or status >= 400
            or duration_ms > self.SLOW_REQUEST_MS
            or bool(get_wide_event().get("streak_user_id"))
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        path = scope.get("path", "")
        request_id = str(uuid.uuid4())

        init_wide_event().update(
            service_name=SERVICE_NAME,
            service_version=SERVICE_VERSION,
            request_id=request_id,
            http_method=scope.get("method", "UNKNOWN"),
            http_path=path,
        )
        status: int | None = None

        def elapsed_ms() -> float:
            return (time.perf_counter() - started) * 1000

        async def send_wrapper(message: Message) -> None:
            nonlocal status

            if message["type"] == "http.response.start":
                status = int(message.get("status", 0))
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-request-duration-ms", f"{elapsed_ms():.2f}".encode()),
                    (b"x-request-id", request_id.encode()),
                ]
            elif message["type"] == "http.response.body" and not message.get(
                "more_body", False
            ):
                duration_ms = elapsed_ms()
                route = scope.get("route")
                set_wide_event_fields(
                    http_route=getattr(route, "path", None) or path,
                    http_status_code=status,
                    duration_ms=round(duration_ms, 2),
                    outcome="success" if status and status < 400 else "error",
                )
                if self._should_emit(status, duration_ms):
                    logger.info("request.completed", **get_wide_event())
                clear_wide_event()

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            set_wide_event_fields(
                duration_ms=round(elapsed_ms(), 2),
                outcome="exception",
                exception_type=type(exc).__name__,
            )
            logger.info("request.completed", **get_wide_event())
            clear_wide_event()
            raise


def _instrumented(
    span_name: str,
    attributes: dict[str, str],
    *,
    wide_event_key: str | None = None,
    record_exceptions: bool = False,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Wrap an async function in a span (when tracing) and time it.

    With ``wide_event_key`` set, cumulative time spent in the call and the
    number of calls are added to the current request's wide event as
    ``<key>_ms`` and ``<key>_calls``.
    """
    prefix = next(iter(attributes)).split(".")[0]

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            span_cm = (
                tracer.start_as_current_span(span_name, attributes=attributes)
                if TELEMETRY_ENABLED and tracer
                else nullcontext()
            )
            started = time.perf_counter()
            with span_cm as span:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    if span is not None:
                        span.set_attribute(f"{prefix}.success", False)
                        if record_exceptions:
                            span.record_exception(e)
                        else:
                            span.set_attribute(f"{prefix}.error", str(e))
                        if Status is not None and StatusCode is not None:
                            span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise
                finally:
                    duration_ms = (time.perf_counter() - started) * 1000
                    if span is not None:
                        span.set_attribute(f"{prefix}.duration_ms", duration_ms)
                    if wide_event_key:
                        add_dependency_timing(wide_event_key, duration_ms)
                if span is not None:
                    span.set_attribute(f"{prefix}.success", True)
                return result

        return wrapper

    return decorator


def track_dependency(name: str, dependency_type: str = "custom"):
    """Time an external call (LeetCode) into the span and the wide event."""
    return _instrumented(
        name,
        {"dependency.type": dependency_type, "dependency.name": name},
        wide_event_key=name,
    )


def track_operation(operation_name: str):
    """Trace a streak operation; exceptions are recorded on the span."""
    return _instrumented(
        operation_name,
        {"operation.name": operation_name},
        record_exceptions=True,
    )


def add_custom_attribute(key: str, value: str | int | float | bool) -> None:
    """Add a custom attribute to the current span."""
    if not TELEMETRY_ENABLED or trace is None:
        return

    span = trace.get_current_span()
    if span:
        span.set_attribute(key, value)


def log_business_event(
    name: str, value: float, properties: dict[str, str] | None = None
) -> None:
    """Log a structured business event (streak updates, reconciliation runs)."""
    if not TELEMETRY_ENABLED:
        return

    logger.info("business.event", event_name=name, value=value, **(properties or {}))
