"""Hour calculation.

Pure functions that turn raw day entries into worked hours and split weekly
totals into pay classifications. They accept anything with the day-entry
attributes (`DayEntry` schemas and `TimesheetDay` rows alike) and never touch
the database.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from timekeeper.models import DayType
from timekeeper.policy import TimesheetPolicy
from timekeeper.schemas import HourBreakdown
from timekeeper.timeutils import MINUTES_PER_DAY, parse_time


class DayTimes(Protocol):
    day_type: DayType
    start_time: str | None
    end_time: str | None
    lunch_start_time: str | None
    lunch_end_time: str | None


def compute_day_hours(entry: DayTimes, policy: TimesheetPolicy) -> float:
    """Return worked hours for one day.

    Rules:
    - non-regular day: the policy's fixed leave/holiday hours, times ignored
    - missing start or end: 0
    - end before start: overnight shift, wrap by 24h
    - both lunch times present: lunch duration is subtracted as-is (a negative
      lunch is reported by validation, not corrected here)
    """
    if entry.day_type != DayType.REGULAR:
        return policy.default_hours_for(entry.day_type)
    if not entry.start_time or not entry.end_time:
        return 0.0

    worked = parse_time(entry.end_time) - parse_time(entry.start_time)
    if worked < 0:
        worked += MINUTES_PER_DAY

    if entry.lunch_start_time and entry.lunch_end_time:
        worked -= parse_time(entry.lunch_end_time) - parse_time(entry.lunch_start_time)

    return max(0, worked) / 60


def compute_week_total(day_hours: Iterable[float], extra_hours: float) -> float:
    return sum(day_hours) + extra_hours


def compute_period_total(week_totals: Iterable[float], vacation_hours: float) -> float:
    return sum(week_totals) + vacation_hours


def classify_hours(week_total: float, policy: TimesheetPolicy) -> HourBreakdown:
    """Split a weekly total at the overtime and double-time thresholds."""
    overtime_start = policy.overtime_threshold
    double_start = max(policy.double_time_threshold, overtime_start)

    regular = min(week_total, overtime_start)
    overtime = max(0.0, min(week_total, double_start) - overtime_start)
    double_time = max(0.0, week_total - double_start)
    return HourBreakdown(regular=regular, overtime=overtime, double_time=double_time)
