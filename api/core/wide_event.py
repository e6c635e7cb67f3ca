"""Request-scoped context for the canonical ``request.completed`` log line.

RequestTimingMiddleware opens an event at request start and emits it once
the response body is sent. Services add streak fields as they go:

    set_wide_event_fields(streak_user_id=user.id, streak_value=result.streak)

Outside a request (CLI, background refresh loop) there is no open event
and every setter is a no-op.
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any] | None] = ContextVar(
    "wide_event", default=None
)


def init_wide_event() -> dict[str, Any]:
    """Open a fresh event for the current async context and return it."""
    event: dict[str, Any] = {}
    _wide_event.set(event)
    return event


def get_wide_event() -> dict[str, Any]:
    """The open event, or an empty dict when none is open."""
    event = _wide_event.get()
    return event if event is not None else {}


def set_wide_event_field(key: str, value: Any) -> None:
    set_wide_event_fields(**{key: value})


def set_wide_event_fields(**kwargs: Any) -> None:
    event = _wide_event.get()
    if event is not None:
        event.update(kwargs)


def add_dependency_timing(name: str, duration_ms: float) -> None:
    """Accumulate ``<name>_ms`` and ``<name>_calls`` for repeated upstream calls."""
    event = _wide_event.get()
    if event is None:
        return
    event[f"{name}_ms"] = round(event.get(f"{name}_ms", 0) + duration_ms, 2)
    event[f"{name}_calls"] = event.get(f"{name}_calls", 0) + 1


def clear_wide_event() -> None:
    """Close the current event."""
    _wide_event.set(None)
