"""Pydantic schemas.

Defines the wire shapes of the timesheet API. Keys cross the boundary in
camelCase, times as zero-padded 24-hour `HH:MM` strings, and an absent time is
an explicit null (an empty string is rejected).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, computed_field, field_validator
from pydantic.alias_generators import to_camel

from timekeeper.models import DayOfWeek, DayType, Timesheet, TimesheetStatus, TimesheetWeek

TimeOfDay = Annotated[str, StringConstraints(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class DayEntry(CamelModel):
    day_of_week: DayOfWeek
    day_type: DayType = DayType.REGULAR
    start_time: TimeOfDay | None = None
    end_time: TimeOfDay | None = None
    lunch_start_time: TimeOfDay | None = None
    lunch_end_time: TimeOfDay | None = None
    total_hours: float = 0


class DayEntryUpdate(CamelModel):
    """Client-writable fields of one day; hours are always recomputed server-side."""

    day_type: DayType = DayType.REGULAR
    start_time: TimeOfDay | None = None
    end_time: TimeOfDay | None = None
    lunch_start_time: TimeOfDay | None = None
    lunch_end_time: TimeOfDay | None = None


class WeekEntry(CamelModel):
    week_number: int = Field(ge=1, le=2)
    extra_hours: float = Field(default=0, ge=0)
    days: list[DayEntry]

    @field_validator("days")
    @classmethod
    def _five_weekdays_in_order(cls, days: list[DayEntry]) -> list[DayEntry]:
        if [day.day_of_week for day in days] != list(DayOfWeek):
            raise ValueError("A week holds exactly one entry per weekday, Monday to Friday, in order")
        return days

    @computed_field(alias="totalHours")
    @property
    def total_hours(self) -> float:
        return sum(day.total_hours for day in self.days) + self.extra_hours

    def day(self, day_of_week: DayOfWeek) -> DayEntry:
        return self.days[day_of_week.offset]

    @classmethod
    def empty(cls, week_number: int) -> WeekEntry:
        return cls(week_number=week_number, days=[DayEntry(day_of_week=dow) for dow in DayOfWeek])

    @classmethod
    def from_model(cls, week: TimesheetWeek) -> WeekEntry:
        return cls(
            week_number=week.week_number,
            extra_hours=week.extra_hours,
            days=[DayEntry.model_validate(day) for day in week.ordered_days],
        )


class PayPeriodRead(CamelModel):
    id: int
    start_date: date
    end_date: date


class PayPeriodCreate(CamelModel):
    start_date: date
    end_date: date


class PayPeriodTimesheetRead(CamelModel):
    id: int
    user_id: int
    status: TimesheetStatus


class PayPeriodListItem(PayPeriodRead):
    timesheets: list[PayPeriodTimesheetRead] = Field(default_factory=list)


class TimesheetRead(CamelModel):
    id: int
    user_id: int
    pay_period_id: int
    pay_period: PayPeriodRead
    status: TimesheetStatus
    vacation_hours: float
    submitted_at: datetime | None = None
    week1: WeekEntry
    week2: WeekEntry
    read_only: bool = False

    @computed_field(alias="totalHours")
    @property
    def total_hours(self) -> float:
        return self.week1.total_hours + self.week2.total_hours + self.vacation_hours

    def week(self, week_number: int) -> WeekEntry:
        return self.week1 if week_number == 1 else self.week2

    @classmethod
    def from_model(cls, timesheet: Timesheet, *, read_only: bool = False) -> TimesheetRead:
        return cls(
            id=timesheet.id,
            user_id=timesheet.user_id,
            pay_period_id=timesheet.pay_period_id,
            pay_period=PayPeriodRead.model_validate(timesheet.pay_period),
            status=timesheet.status,
            vacation_hours=timesheet.vacation_hours,
            submitted_at=timesheet.submitted_at,
            week1=WeekEntry.from_model(timesheet.week(1)),
            week2=WeekEntry.from_model(timesheet.week(2)),
            read_only=read_only,
        )


class HoursUpdate(CamelModel):
    hours: float = Field(ge=0, le=168)


class TimesheetDecision(CamelModel):
    approve: bool


class StatusOverride(CamelModel):
    status: TimesheetStatus


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class HourBreakdown(CamelModel):
    regular: float
    overtime: float
    double_time: float


class DayReport(CamelModel):
    week_number: int
    day_of_week: DayOfWeek
    day_type: DayType
    total_hours: float


class TimesheetReportRow(CamelModel):
    timesheet_id: int
    user_id: int
    user_name: str
    pay_period_id: int
    status: TimesheetStatus
    submitted_at: datetime | None
    total_hours: float
    vacation_hours: float
    week_hours: list[HourBreakdown]
    days: list[DayReport]
