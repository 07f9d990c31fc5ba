"""Wall-clock and calendar helpers shared by the calculator and validator."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

MINUTES_PER_DAY = 24 * 60
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_time(value: str) -> int:
    """Convert a zero-padded 24-hour `HH:MM` string to minutes since midnight."""
    match = _TIME_RE.match(value)
    if not match:
        raise ValueError(f"Invalid time of day {value!r}; expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    """Inverse of `parse_time` for values inside one day."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def as_calendar_date(value: date | datetime) -> date:
    """Drop any time/zone component so period lookups compare calendar dates."""
    if isinstance(value, datetime):
        return value.date()
    return value


def week_start(day: date) -> date:
    """Most recent Monday on or before `day`."""
    return day - timedelta(days=day.weekday())


def today() -> date:
    """Current local date.

    Wrapped so tests can patch it.
    """
    return date.today()


def utcnow() -> datetime:
    return datetime.utcnow()
