"""Time-entry validation.

Rules are evaluated in a fixed order and every applicable violation is
collected, so the user sees all problems with a day at once. Overtime and
double-time thresholds are classifications, not rules, and never appear here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Protocol

from timekeeper.calculator import DayTimes
from timekeeper.models import DayType
from timekeeper.policy import TimesheetPolicy
from timekeeper.schemas import TimesheetRead
from timekeeper.timeutils import format_minutes, parse_time

# A period stays editable until this many days after its end date.
EDIT_GRACE_DAYS = 1


@dataclass(frozen=True)
class ValidationResult:
    violations: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.violations


class DayEntryLike(DayTimes, Protocol):
    total_hours: float


def has_incomplete_pair(entry: DayTimes) -> bool:
    """True when exactly one of a start/end pair is filled in."""
    return bool(entry.start_time) != bool(entry.end_time) or bool(entry.lunch_start_time) != bool(
        entry.lunch_end_time
    )


def _pairing_violations(entry: DayTimes) -> list[str]:
    violations = []
    if entry.start_time and not entry.end_time:
        violations.append("End time is required when start time is entered")
    if entry.end_time and not entry.start_time:
        violations.append("Start time is required when end time is entered")
    if entry.lunch_start_time and not entry.lunch_end_time:
        violations.append("Lunch end time is required when lunch start time is entered")
    if entry.lunch_end_time and not entry.lunch_start_time:
        violations.append("Lunch start time is required when lunch end time is entered")
    return violations


def validate_day(entry: DayEntryLike, policy: TimesheetPolicy) -> ValidationResult:
    violations = _pairing_violations(entry)
    if entry.day_type != DayType.REGULAR:
        return ValidationResult(violations)

    start = parse_time(entry.start_time) if entry.start_time else None
    end = parse_time(entry.end_time) if entry.end_time else None

    if start is not None and end is not None:
        if start < policy.min_start_time:
            violations.append(f"Start time must be at or after {format_minutes(policy.min_start_time)}")
        if end > policy.max_end_time:
            violations.append(f"End time must be at or before {format_minutes(policy.max_end_time)}")
        if end <= start:
            violations.append("End time must be after start time")

    if entry.lunch_start_time and entry.lunch_end_time:
        lunch_start = parse_time(entry.lunch_start_time)
        lunch_end = parse_time(entry.lunch_end_time)
        if start is not None and lunch_start < start:
            violations.append("Lunch start time must be at or after start time")
        if end is not None and lunch_end > end:
            violations.append("Lunch end time must be at or before end time")
        if lunch_end <= lunch_start:
            violations.append("Lunch end time must be after lunch start time")

    if entry.total_hours > policy.max_daily_hours:
        violations.append(f"Total hours cannot exceed {policy.max_daily_hours:g} hours per day")

    return ValidationResult(violations)


def validate_week_total(week_total_hours: float, policy: TimesheetPolicy) -> ValidationResult:
    if week_total_hours > policy.max_weekly_hours:
        return ValidationResult([f"Total hours cannot exceed {policy.max_weekly_hours:g} hours per week"])
    return ValidationResult()


def validate_timesheet(timesheet: TimesheetRead, policy: TimesheetPolicy) -> ValidationResult:
    """Validate every day and both week totals; violations are prefixed with their location."""
    violations: list[str] = []
    for week in (timesheet.week1, timesheet.week2):
        for day in week.days:
            label = f"Week {week.week_number} {day.day_of_week.label}"
            violations.extend(f"{label}: {message}" for message in validate_day(day, policy).violations)
        violations.extend(
            f"Week {week.week_number}: {message}"
            for message in validate_week_total(week.total_hours, policy).violations
        )
    return ValidationResult(violations)


def entry_date_violations(entry_date: date, today: date, policy: TimesheetPolicy) -> list[str]:
    """Check the future/past entry windows for a day that carries time values."""
    if entry_date > today and not policy.allow_future_time_entry:
        return [f"Cannot enter times for a future date ({entry_date.isoformat()})"]
    if entry_date < today:
        if not policy.allow_past_time_entry:
            return [f"Cannot enter times for a past date ({entry_date.isoformat()})"]
        if (today - entry_date).days > policy.past_time_entry_limit:
            return [
                f"Cannot enter times more than {policy.past_time_entry_limit} days in the past "
                f"({entry_date.isoformat()})"
            ]
    return []


def is_period_frozen(period_end: date, today: date) -> bool:
    """A period stops accepting edits once it ended more than the grace period ago."""
    return today > period_end + timedelta(days=EDIT_GRACE_DAYS)
