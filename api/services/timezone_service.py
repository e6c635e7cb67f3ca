"""Timezone helpers for bucketing submission instants into local calendar days.

All functions are pure. Unknown or malformed zones never raise: they
degrade to UTC and log a ``timezone.invalid`` warning.

Instants are Unix seconds (what LeetCode returns) or timezone-aware
datetimes. Naive datetimes are treated as UTC, which is what SQLite hands
back for ``DateTime(timezone=True)`` columns.
"""

import re
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEZONE = "UTC"

# One representative zone per whole-hour offset. Zones without DST are
# preferred so the offset a user registered with stays stable all year.
OFFSET_TO_IANA: dict[int, str] = {
    -11: "Pacific/Pago_Pago",
    -10: "Pacific/Honolulu",
    -9: "Pacific/Gambier",
    -8: "Pacific/Pitcairn",
    -7: "America/Phoenix",
    -6: "America/Guatemala",
    -5: "America/Bogota",
    -4: "America/La_Paz",
    -3: "America/Argentina/Buenos_Aires",
    -2: "Atlantic/South_Georgia",
    -1: "Atlantic/Cape_Verde",
    0: "UTC",
    1: "Africa/Lagos",
    2: "Africa/Johannesburg",
    3: "Asia/Riyadh",
    4: "Asia/Dubai",
    5: "Asia/Karachi",
    6: "Asia/Dhaka",
    7: "Asia/Bangkok",
    8: "Asia/Singapore",
    9: "Asia/Tokyo",
    10: "Australia/Brisbane",
    11: "Pacific/Guadalcanal",
    12: "Pacific/Fiji",
}

_UTC_ALIASES = frozenset({"UTC", "GMT", "Z", "ETC/UTC", "ETC/GMT"})

_OFFSET_RE = re.compile(
    r"^(?:UTC|GMT)?\s*(?P<sign>[+-])(?P<hours>\d{1,2})(?::?(?P<minutes>\d{2}))?$",
    re.IGNORECASE,
)


def timestamp_to_datetime(timestamp: int | float) -> datetime:
    """Convert Unix seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, tz=UTC)


def datetime_to_timestamp(value: datetime | None) -> int | None:
    """Convert a datetime to whole Unix seconds (floored). None passes through."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() // 1)


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA name to a ZoneInfo, falling back to UTC."""
    if not name:
        return ZoneInfo(DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning("timezone.invalid", timezone=name, fallback=DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def _parse_offset_minutes(value: str) -> int | None:
    match = _OFFSET_RE.match(value.strip())
    if not match:
        return None
    hours = int(match.group("hours"))
    minutes = int(match.group("minutes") or 0)
    if minutes >= 60:
        return None
    total = hours * 60 + minutes
    return -total if match.group("sign") == "-" else total


def get_iana_timezone(value: str | None) -> str:
    """Normalize a stored timezone value to an IANA identifier.

    - None / empty / unrecognized -> "UTC"
    - anything containing "/" is assumed to already be IANA and passes through
    - whole-hour UTC offsets ("+05:00", "UTC-3", "+0900") map to a
      representative zone from OFFSET_TO_IANA
    """
    if not value or not value.strip():
        return DEFAULT_TIMEZONE

    value = value.strip()
    if "/" in value:
        return value
    if value.upper() in _UTC_ALIASES:
        return DEFAULT_TIMEZONE

    offset_minutes = _parse_offset_minutes(value)
    if offset_minutes is not None and offset_minutes % 60 == 0:
        zone = OFFSET_TO_IANA.get(offset_minutes // 60)
        if zone:
            return zone

    logger.warning("timezone.invalid", timezone=value, fallback=DEFAULT_TIMEZONE)
    return DEFAULT_TIMEZONE


def is_known_timezone(value: str | None) -> bool:
    """True when ``value`` names an IANA zone or an offset get_iana_timezone maps."""
    if not value or not value.strip():
        return False

    value = value.strip()
    if value.upper() in _UTC_ALIASES:
        return True
    if "/" in value:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError, OSError):
            return False
        return True

    offset_minutes = _parse_offset_minutes(value)
    return (
        offset_minutes is not None
        and offset_minutes % 60 == 0
        and offset_minutes // 60 in OFFSET_TO_IANA
    )


def get_utc_offset(timezone: str | None, now: datetime | None = None) -> str:
    """UTC offset of an IANA zone at ``now`` (default: current instant), "+HH:MM"."""
    moment = now or datetime.now(UTC)
    offset = moment.astimezone(get_zone(timezone)).utcoffset() or timedelta(0)
    total_minutes = int(offset.total_seconds() // 60)
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def to_local_datetime(timestamp: int | float, timezone: str | None) -> datetime:
    return timestamp_to_datetime(timestamp).astimezone(get_zone(timezone))


def local_date(timestamp: int | float, timezone: str | None) -> date:
    """Calendar day of an instant in the given zone."""
    return to_local_datetime(timestamp, timezone).date()


def format_day(timestamp: int | float, timezone: str | None) -> str:
    """Calendar day of an instant in the given zone, as YYYY-MM-DD."""
    return local_date(timestamp, timezone).isoformat()


def is_same_day(ts_a: int | float, ts_b: int | float, timezone: str | None) -> bool:
    return local_date(ts_a, timezone) == local_date(ts_b, timezone)


def is_next_day(ts_a: int | float, ts_b: int | float, timezone: str | None) -> bool:
    """True when ts_a's local day is exactly the day after ts_b's."""
    return local_date(ts_a, timezone) - local_date(ts_b, timezone) == timedelta(days=1)
