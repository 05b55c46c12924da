"""
GTSD — Timestamp Handling
Strict parsing of client UTC timestamps, second-resolution matching against
stored values, and reference-timezone week boundaries.
"""

import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from errors import ValidationError

# Longest accepted form: 2025-10-30T12:34:56.123456Z (27 chars)
MAX_TIMESTAMP_LENGTH = 32

_UTC_TIMESTAMP = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,6}))?Z",
    re.ASCII,
)

TIMESTAMP_HINT = 'e.g. "2025-10-30T12:34:56Z" or "2025-10-30T12:34:56.789Z"'


def parse_utc_timestamp(value: str, field: str = "metrics_computed_at") -> datetime:
    """
    Parse a Z-suffixed ISO-8601 timestamp with optional fractional seconds.
    Offsets, date-only strings and impossible calendar values are rejected.
    """
    if not isinstance(value, str) or len(value) > MAX_TIMESTAMP_LENGTH:
        raise ValidationError(f"Must be a UTC ISO-8601 datetime ({TIMESTAMP_HINT})", field=field)

    match = _UTC_TIMESTAMP.fullmatch(value)
    if not match:
        raise ValidationError(f"Must be a UTC ISO-8601 datetime ({TIMESTAMP_HINT})", field=field)

    year, month, day, hour, minute, second, fraction = match.groups()
    micro = int((fraction or "").ljust(6, "0"))
    try:
        return datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second), micro,
            tzinfo=timezone.utc,
        )
    except ValueError as e:
        raise ValidationError(f"Must be a valid date: {e}", field=field)


def as_utc(moment: datetime) -> datetime:
    """Naive values (SQLite round-trips) are taken to already be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def epoch_second(moment: datetime) -> int:
    return math.floor(as_utc(moment).timestamp())


def same_second(a: datetime, b: datetime) -> bool:
    return epoch_second(a) == epoch_second(b)


def format_utc(moment: Optional[datetime]) -> Optional[str]:
    if moment is None:
        return None
    return as_utc(moment).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today_in(tz_name: str, now: Optional[datetime] = None) -> date:
    return as_utc(now or now_utc()).astimezone(ZoneInfo(tz_name)).date()


def week_bounds(tz_name: str, now: Optional[datetime] = None) -> tuple[date, date]:
    """Monday and Sunday of the week containing `now` in the given zone."""
    today = today_in(tz_name, now)
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=6)


def week_window(week_start: date, tz_name: str) -> tuple[datetime, datetime]:
    """Monday 00:00:00 through Sunday 23:59:59 as aware datetimes."""
    zone = ZoneInfo(tz_name)
    start = datetime.combine(week_start, time.min, tzinfo=zone)
    end = datetime.combine(week_start + timedelta(days=6), time(23, 59, 59), tzinfo=zone)
    return start, end
