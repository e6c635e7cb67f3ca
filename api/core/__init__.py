"""Core utilities for the Streak Sync API.

    from core import get_logger
"""

from core.logger import bound_contextvars, get_logger
from core.wide_event import (
    get_wide_event,
    set_wide_event_field,
    set_wide_event_fields,
)

__all__ = [
    "bound_contextvars",
    "get_logger",
    "get_wide_event",
    "set_wide_event_field",
    "set_wide_event_fields",
]
