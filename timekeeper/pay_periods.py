"""Pay period resolution.

Periods are fourteen calendar days starting on a Monday. They are created
lazily the first time a date with no covering period is looked up, and the
unique `(start_date, end_date)` constraint turns find-or-create into an
insert-if-absent: a losing concurrent insert rolls back its savepoint and
re-reads the winner's row.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from timekeeper.errors import ConflictError, NotFoundError, ValidationError
from timekeeper.models import DayOfWeek, PayPeriod
from timekeeper.policy import TimesheetPolicy
from timekeeper.timeutils import as_calendar_date, week_start

logger = logging.getLogger(__name__)


def derive_period_range(reference_date: date, policy: TimesheetPolicy) -> tuple[date, date]:
    """Return the window starting on the Monday on or before `reference_date`."""
    start = week_start(reference_date)
    return start, start + timedelta(days=policy.pay_period_length - 1)


def day_date(period: PayPeriod, week_number: int, day_of_week: DayOfWeek) -> date:
    """Calendar date of a weekday inside a period."""
    return period.start_date + timedelta(days=(week_number - 1) * 7 + day_of_week.offset)


def get_pay_period(db: Session, pay_period_id: int) -> PayPeriod:
    period = db.get(PayPeriod, pay_period_id)
    if not period:
        raise NotFoundError(f"Pay period {pay_period_id} not found")
    return period


def find_period_covering(db: Session, day: date) -> PayPeriod | None:
    return db.scalar(select(PayPeriod).where(PayPeriod.start_date <= day, PayPeriod.end_date >= day))


def _find_overlapping(db: Session, start: date, end: date) -> PayPeriod | None:
    return db.scalar(
        select(PayPeriod).where(PayPeriod.start_date <= end, PayPeriod.end_date >= start).order_by(PayPeriod.start_date)
    )


def _insert_period(db: Session, start: date, end: date) -> PayPeriod:
    """Insert a period or return the row a concurrent writer created for the same range."""
    try:
        with db.begin_nested():
            period = PayPeriod(start_date=start, end_date=end)
            db.add(period)
    except IntegrityError:
        logger.warning("Pay period %s..%s created concurrently; re-reading existing row", start, end)
        period = db.scalar(select(PayPeriod).where(PayPeriod.start_date == start, PayPeriod.end_date == end))
        if period is None:
            raise ConflictError(f"Could not create or read pay period {start}..{end}") from None
        return period
    db.commit()
    logger.info("Created pay period id=%s %s..%s", period.id, start, end)
    return period


def resolve_current_period(db: Session, reference_date: date | datetime, policy: TimesheetPolicy) -> PayPeriod:
    """Find the period covering `reference_date`, creating it when absent.

    Idempotent per date: repeated calls return the same row.
    """
    day = as_calendar_date(reference_date)
    period = find_period_covering(db, day)
    if period:
        return period

    start, end = derive_period_range(day, policy)
    clash = _find_overlapping(db, start, end)
    if clash:
        raise ConflictError(
            f"Derived pay period {start}..{end} overlaps existing period {clash.start_date}..{clash.end_date}"
        )
    return _insert_period(db, start, end)


def create_pay_period(db: Session, start_date: date, end_date: date, policy: TimesheetPolicy) -> PayPeriod:
    """Administrator-created period; must be a full Monday-based window that overlaps nothing."""
    violations = []
    if start_date.weekday() != 0:
        violations.append("Pay period must start on a Monday")
    if (end_date - start_date).days != policy.pay_period_length - 1:
        violations.append(f"Pay period must span exactly {policy.pay_period_length} days")
    if violations:
        raise ValidationError(violations)

    clash = _find_overlapping(db, start_date, end_date)
    if clash:
        raise ConflictError(f"Pay period overlaps existing period {clash.start_date}..{clash.end_date}")
    return _insert_period(db, start_date, end_date)


def list_pay_periods(db: Session) -> list[PayPeriod]:
    return list(
        db.scalars(
            select(PayPeriod).options(selectinload(PayPeriod.timesheets)).order_by(PayPeriod.start_date.desc())
        ).all()
    )
