"""Reporting queries.

Read-only views over stored timesheets for admin tooling: status, total hours,
per-day classification and the regular/overtime/double-time split per week,
keyed by pay period and optionally by user. Stored day hours are reported as
they are; a policy change does not rewrite history.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from timekeeper.calculator import classify_hours
from timekeeper.models import Timesheet, TimesheetWeek
from timekeeper.pay_periods import get_pay_period
from timekeeper.policy import TimesheetPolicy
from timekeeper.schemas import DayReport, TimesheetRead, TimesheetReportRow


def timesheet_report(
    db: Session, pay_period_id: int, policy: TimesheetPolicy, user_id: int | None = None
) -> list[TimesheetReportRow]:
    get_pay_period(db, pay_period_id)
    query = (
        select(Timesheet)
        .options(
            selectinload(Timesheet.user),
            selectinload(Timesheet.pay_period),
            selectinload(Timesheet.weeks).selectinload(TimesheetWeek.days),
        )
        .where(Timesheet.pay_period_id == pay_period_id)
        .order_by(Timesheet.user_id)
    )
    if user_id is not None:
        query = query.where(Timesheet.user_id == user_id)

    rows = []
    for timesheet in db.scalars(query).all():
        view = TimesheetRead.from_model(timesheet)
        weeks = (view.week1, view.week2)
        rows.append(
            TimesheetReportRow(
                timesheet_id=view.id,
                user_id=view.user_id,
                user_name=timesheet.user.full_name,
                pay_period_id=view.pay_period_id,
                status=view.status,
                submitted_at=view.submitted_at,
                total_hours=view.total_hours,
                vacation_hours=view.vacation_hours,
                week_hours=[classify_hours(week.total_hours, policy) for week in weeks],
                days=[
                    DayReport(
                        week_number=week.week_number,
                        day_of_week=day.day_of_week,
                        day_type=day.day_type,
                        total_hours=day.total_hours,
                    )
                    for week in weeks
                    for day in week.days
                ],
            )
        )
    return rows
