"""Timesheet domain services.

This module owns every read and write of the timesheet aggregate: lazy
creation per (user, pay period), day/week/vacation edits with immediate hour
recomputation, and the guarded lifecycle transitions. Each write commits as a
single unit; on any failure the session is rolled back so no half-applied
change (for example a status flip without its timestamp) is ever persisted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from timekeeper import lifecycle
from timekeeper.calculator import compute_day_hours
from timekeeper.errors import ConflictError, NotFoundError, PermissionDeniedError, StateError, ValidationError
from timekeeper.models import (
    WEEK_NUMBERS,
    DayOfWeek,
    DayType,
    Role,
    Timesheet,
    TimesheetDay,
    TimesheetStatus,
    TimesheetWeek,
    User,
)
from timekeeper.pay_periods import day_date, get_pay_period, resolve_current_period
from timekeeper.policy import TimesheetPolicy
from timekeeper.schemas import DayEntryUpdate, TimesheetRead
from timekeeper.timeutils import today as current_date
from timekeeper.timeutils import utcnow
from timekeeper.validation import entry_date_violations, is_period_frozen, validate_timesheet

logger = logging.getLogger(__name__)

TIME_FIELDS = ("start_time", "end_time", "lunch_start_time", "lunch_end_time")


def _timesheet_query():
    return select(Timesheet).options(
        selectinload(Timesheet.pay_period),
        selectinload(Timesheet.weeks).selectinload(TimesheetWeek.days),
    )


def _commit(db: Session) -> None:
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


def load_timesheet(db: Session, timesheet_id: int) -> Timesheet:
    timesheet = db.scalar(_timesheet_query().where(Timesheet.id == timesheet_id))
    if not timesheet:
        raise NotFoundError(f"Timesheet {timesheet_id} not found")
    return timesheet


def _require_owner(timesheet: Timesheet, actor: User) -> None:
    if timesheet.user_id != actor.id:
        raise PermissionDeniedError("Only the owner can change this timesheet")


def _require_admin(actor: User) -> None:
    if actor.role != Role.ADMIN:
        raise PermissionDeniedError("Administrator role required")


def _require_reader(timesheet: Timesheet, actor: User) -> None:
    if timesheet.user_id != actor.id and actor.role != Role.ADMIN:
        raise PermissionDeniedError("Access denied")


def _find_timesheet(db: Session, user_id: int, pay_period_id: int) -> Timesheet | None:
    return db.scalar(
        _timesheet_query().where(Timesheet.user_id == user_id, Timesheet.pay_period_id == pay_period_id)
    )


def _new_timesheet(user_id: int, pay_period_id: int, holidays: Callable[[int, DayOfWeek], float | None]) -> Timesheet:
    weeks = []
    for week_number in WEEK_NUMBERS:
        days = []
        for day_of_week in DayOfWeek:
            holiday_hours = holidays(week_number, day_of_week)
            if holiday_hours is None:
                days.append(TimesheetDay(day_of_week=day_of_week, day_type=DayType.REGULAR, total_hours=0))
            else:
                days.append(TimesheetDay(day_of_week=day_of_week, day_type=DayType.HOLIDAY, total_hours=holiday_hours))
        weeks.append(TimesheetWeek(week_number=week_number, extra_hours=0, days=days))
    return Timesheet(
        user_id=user_id,
        pay_period_id=pay_period_id,
        status=TimesheetStatus.DRAFT,
        vacation_hours=0,
        weeks=weeks,
    )


def get_or_create_timesheet(db: Session, user_id: int, pay_period_id: int, policy: TimesheetPolicy) -> Timesheet:
    """Return the single timesheet for (user, period), creating an all-zero draft on first access.

    Weekdays that fall on a configured holiday start out as Holiday days.
    """
    timesheet = _find_timesheet(db, user_id, pay_period_id)
    if timesheet:
        return timesheet
    if db.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found")
    period = get_pay_period(db, pay_period_id)

    def holiday_hours(week_number: int, day_of_week: DayOfWeek) -> float | None:
        holiday = policy.holiday_on(day_date(period, week_number, day_of_week))
        if holiday is None:
            return None
        return holiday.hours_default if holiday.hours_default is not None else policy.holiday_hours_default

    try:
        with db.begin_nested():
            db.add(_new_timesheet(user_id, pay_period_id, holiday_hours))
    except IntegrityError:
        logger.warning("Timesheet for user=%s period=%s created concurrently; re-reading", user_id, pay_period_id)
    else:
        _commit(db)
        logger.info("Created timesheet for user=%s period=%s", user_id, pay_period_id)

    timesheet = _find_timesheet(db, user_id, pay_period_id)
    if not timesheet:
        raise ConflictError(f"Could not create or read timesheet for user {user_id} period {pay_period_id}")
    return timesheet


def get_current_timesheet(
    db: Session, actor: User, policy: TimesheetPolicy, reference_date: date | None = None
) -> TimesheetRead:
    period = resolve_current_period(db, reference_date or current_date(), policy)
    return TimesheetRead.from_model(get_or_create_timesheet(db, actor.id, period.id, policy))


def get_timesheet(db: Session, timesheet_id: int, actor: User) -> TimesheetRead:
    timesheet = load_timesheet(db, timesheet_id)
    _require_reader(timesheet, actor)
    return TimesheetRead.from_model(timesheet)


def get_previous_timesheet(db: Session, actor: User) -> TimesheetRead:
    """Most recently submitted timesheet of the user, as a read-only view."""
    timesheet = db.scalar(
        _timesheet_query()
        .where(Timesheet.user_id == actor.id, Timesheet.status == TimesheetStatus.SUBMITTED)
        .order_by(Timesheet.submitted_at.desc())
        .limit(1)
    )
    if not timesheet:
        raise NotFoundError("No previous timesheet found")
    return TimesheetRead.from_model(timesheet, read_only=True)


def _load_for_edit(db: Session, timesheet_id: int, actor: User, today: date) -> Timesheet:
    timesheet = load_timesheet(db, timesheet_id)
    _require_owner(timesheet, actor)
    lifecycle.ensure_editable(timesheet)
    if is_period_frozen(timesheet.pay_period.end_date, today):
        raise StateError("Cannot modify a timesheet for a pay period that has ended")
    return timesheet


def _week(timesheet: Timesheet, week_number: int) -> TimesheetWeek:
    try:
        return timesheet.week(week_number)
    except KeyError:
        raise NotFoundError(f"Week {week_number} not found") from None


def _apply_day_fields(day: TimesheetDay, fields: DayEntryUpdate | TimesheetDay, policy: TimesheetPolicy) -> None:
    day.day_type = fields.day_type
    for name in TIME_FIELDS:
        # Non-regular days carry no times; their hours are fixed by policy.
        setattr(day, name, getattr(fields, name) if fields.day_type == DayType.REGULAR else None)
    day.total_hours = compute_day_hours(day, policy)


def _check_entry_window(
    timesheet: Timesheet, week_number: int, day: TimesheetDay, incoming: DayEntryUpdate | TimesheetDay,
    policy: TimesheetPolicy, today: date,
) -> None:
    """Refuse new time values on locked dates; a day-type-only change is always allowed."""
    if incoming.day_type != DayType.REGULAR:
        return
    if all(getattr(day, name) == getattr(incoming, name) for name in TIME_FIELDS):
        return
    if not any(getattr(incoming, name) for name in TIME_FIELDS):
        return
    entry_date = day_date(timesheet.pay_period, week_number, day.day_of_week)
    violations = entry_date_violations(entry_date, today, policy)
    if violations:
        raise ValidationError([f"Week {week_number} {day.day_of_week.label}: {message}" for message in violations])


def update_day_entry(
    db: Session,
    timesheet_id: int,
    week_number: int,
    day_of_week: DayOfWeek,
    entry: DayEntryUpdate,
    actor: User,
    policy: TimesheetPolicy,
    today: date | None = None,
) -> TimesheetRead:
    """Replace one day's client-writable fields and recompute its hours.

    Incomplete or out-of-policy entries are stored as draft data; they only
    block submission.
    """
    today = today or current_date()
    timesheet = _load_for_edit(db, timesheet_id, actor, today)
    day = _week(timesheet, week_number).day(day_of_week)
    _check_entry_window(timesheet, week_number, day, entry, policy, today)
    _apply_day_fields(day, entry, policy)
    timesheet.updated_at = utcnow()
    _commit(db)
    return TimesheetRead.from_model(timesheet)


def update_extra_hours(
    db: Session, timesheet_id: int, week_number: int, hours: float, actor: User, today: date | None = None
) -> TimesheetRead:
    if hours < 0:
        raise ValidationError("Extra hours cannot be negative")
    timesheet = _load_for_edit(db, timesheet_id, actor, today or current_date())
    _week(timesheet, week_number).extra_hours = hours
    timesheet.updated_at = utcnow()
    _commit(db)
    return TimesheetRead.from_model(timesheet)


def update_vacation_hours(
    db: Session, timesheet_id: int, hours: float, actor: User, today: date | None = None
) -> TimesheetRead:
    if hours < 0:
        raise ValidationError("Vacation hours cannot be negative")
    timesheet = _load_for_edit(db, timesheet_id, actor, today or current_date())
    timesheet.vacation_hours = hours
    timesheet.updated_at = utcnow()
    _commit(db)
    return TimesheetRead.from_model(timesheet)


def copy_previous_day(
    db: Session,
    timesheet_id: int,
    week_number: int,
    day_of_week: DayOfWeek,
    actor: User,
    policy: TimesheetPolicy,
    today: date | None = None,
) -> TimesheetRead:
    """Copy the preceding weekday's entry onto `day_of_week`."""
    if day_of_week == DayOfWeek.MONDAY:
        raise ValidationError("Monday has no previous day to copy")
    today = today or current_date()
    timesheet = _load_for_edit(db, timesheet_id, actor, today)
    week = _week(timesheet, week_number)
    source = week.day(list(DayOfWeek)[day_of_week.offset - 1])
    target = week.day(day_of_week)
    _check_entry_window(timesheet, week_number, target, source, policy, today)
    _apply_day_fields(target, source, policy)
    timesheet.updated_at = utcnow()
    _commit(db)
    return TimesheetRead.from_model(timesheet)


def copy_week(
    db: Session, timesheet_id: int, actor: User, policy: TimesheetPolicy, today: date | None = None
) -> TimesheetRead:
    """Copy every week-1 day and its extra hours into week 2."""
    today = today or current_date()
    timesheet = _load_for_edit(db, timesheet_id, actor, today)
    source_week, target_week = _week(timesheet, 1), _week(timesheet, 2)
    pairs = [(source_week.day(day_of_week), target_week.day(day_of_week)) for day_of_week in DayOfWeek]
    for source, target in pairs:
        _check_entry_window(timesheet, 2, target, source, policy, today)
    for source, target in pairs:
        _apply_day_fields(target, source, policy)
    target_week.extra_hours = source_week.extra_hours
    timesheet.updated_at = utcnow()
    _commit(db)
    return TimesheetRead.from_model(timesheet)


def submit_timesheet(
    db: Session, timesheet_id: int, actor: User, policy: TimesheetPolicy, now: datetime | None = None
) -> TimesheetRead:
    """Draft -> Submitted. Refused with every violation listed while any day or week is invalid."""
    timesheet = load_timesheet(db, timesheet_id)
    _require_owner(timesheet, actor)
    lifecycle.check_transition(timesheet.status, TimesheetStatus.SUBMITTED)
    result = validate_timesheet(TimesheetRead.from_model(timesheet), policy)
    if not result.valid:
        raise ValidationError(result.violations)
    lifecycle.transition(timesheet, TimesheetStatus.SUBMITTED, now or utcnow())
    _commit(db)
    return TimesheetRead.from_model(timesheet)


def recall_timesheet(db: Session, timesheet_id: int, actor: User, now: datetime | None = None) -> TimesheetRead:
    """Submitted -> Draft, owner only. Allowed even after the period has ended."""
    timesheet = load_timesheet(db, timesheet_id)
    _require_owner(timesheet, actor)
    lifecycle.transition(timesheet, TimesheetStatus.DRAFT, now or utcnow())
    _commit(db)
    return TimesheetRead.from_model(timesheet)


def decide_timesheet(
    db: Session, timesheet_id: int, actor: User, approve: bool, now: datetime | None = None
) -> TimesheetRead:
    _require_admin(actor)
    timesheet = load_timesheet(db, timesheet_id)
    target = TimesheetStatus.APPROVED if approve else TimesheetStatus.REJECTED
    lifecycle.transition(timesheet, target, now or utcnow())
    _commit(db)
    return TimesheetRead.from_model(timesheet)


def set_timesheet_status(
    db: Session, timesheet_id: int, actor: User, status: TimesheetStatus, now: datetime | None = None
) -> TimesheetRead:
    """Administrator out-of-band status change; bypasses the transition table."""
    _require_admin(actor)
    timesheet = load_timesheet(db, timesheet_id)
    lifecycle.override_status(timesheet, status, now or utcnow())
    _commit(db)
    return TimesheetRead.from_model(timesheet)
