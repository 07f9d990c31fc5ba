"""ORM models.

Defines user accounts, the shared two-week pay periods, and the per-user
timesheet aggregate (timesheet -> two weeks -> five weekdays), plus the
key/value table that stores administrator-editable policy.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timekeeper.database import Base


class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


class TimesheetStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class DayType(str, Enum):
    REGULAR = "regular"
    VACATION = "vacation"
    SICK = "sick"
    HOLIDAY = "holiday"


class DayOfWeek(str, Enum):
    """Working weekdays in pay-period order; iteration order is significant."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"

    @property
    def offset(self) -> int:
        """Days since the Monday that starts the week."""
        return list(DayOfWeek).index(self)

    @property
    def label(self) -> str:
        return self.value.capitalize()


WEEK_NUMBERS = (1, 2)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(120))
    hashed_password: Mapped[str] = mapped_column(String(255))
    role: Mapped[Role] = mapped_column(SQLEnum(Role), default=Role.EMPLOYEE)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    timesheets: Mapped[list[Timesheet]] = relationship(back_populates="user", cascade="all, delete-orphan")


class PayPeriod(Base):
    __tablename__ = "pay_periods"
    # The unique range is what makes concurrent find-or-create converge on one row.
    __table_args__ = (UniqueConstraint("start_date", "end_date", name="uq_pay_periods_range"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date] = mapped_column(Date, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    timesheets: Mapped[list[Timesheet]] = relationship(back_populates="pay_period")

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class Timesheet(Base):
    __tablename__ = "timesheets"
    __table_args__ = (UniqueConstraint("user_id", "pay_period_id", name="uq_timesheets_user_period"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    pay_period_id: Mapped[int] = mapped_column(ForeignKey("pay_periods.id"), index=True)
    status: Mapped[TimesheetStatus] = mapped_column(SQLEnum(TimesheetStatus), default=TimesheetStatus.DRAFT)
    vacation_hours: Mapped[float] = mapped_column(Float, default=0)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped[User] = relationship(back_populates="timesheets")
    pay_period: Mapped[PayPeriod] = relationship(back_populates="timesheets")
    weeks: Mapped[list[TimesheetWeek]] = relationship(
        back_populates="timesheet",
        cascade="all, delete-orphan",
        order_by="TimesheetWeek.week_number",
    )

    def week(self, week_number: int) -> TimesheetWeek:
        for week in self.weeks:
            if week.week_number == week_number:
                return week
        raise KeyError(week_number)


class TimesheetWeek(Base):
    __tablename__ = "timesheet_weeks"
    __table_args__ = (UniqueConstraint("timesheet_id", "week_number", name="uq_timesheet_weeks_number"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    timesheet_id: Mapped[int] = mapped_column(ForeignKey("timesheets.id"), index=True)
    week_number: Mapped[int] = mapped_column(Integer)
    extra_hours: Mapped[float] = mapped_column(Float, default=0)

    timesheet: Mapped[Timesheet] = relationship(back_populates="weeks")
    days: Mapped[list[TimesheetDay]] = relationship(back_populates="week", cascade="all, delete-orphan")

    @property
    def ordered_days(self) -> list[TimesheetDay]:
        return sorted(self.days, key=lambda day: day.day_of_week.offset)

    def day(self, day_of_week: DayOfWeek) -> TimesheetDay:
        for day in self.days:
            if day.day_of_week == day_of_week:
                return day
        raise KeyError(day_of_week)


class TimesheetDay(Base):
    __tablename__ = "timesheet_days"
    __table_args__ = (UniqueConstraint("week_id", "day_of_week", name="uq_timesheet_days_weekday"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    week_id: Mapped[int] = mapped_column(ForeignKey("timesheet_weeks.id"), index=True)
    day_of_week: Mapped[DayOfWeek] = mapped_column(SQLEnum(DayOfWeek))
    day_type: Mapped[DayType] = mapped_column(SQLEnum(DayType), default=DayType.REGULAR)
    # Wall-clock "HH:MM" strings; NULL means absent.
    start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    lunch_start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    lunch_end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    total_hours: Mapped[float] = mapped_column(Float, default=0)

    week: Mapped[TimesheetWeek] = relationship(back_populates="days")


class AppConfig(Base):
    __tablename__ = "app_config"

    id: Mapped[int] = mapped_column(primary_key=True)
    key: Mapped[str] = mapped_column(String(80), unique=True)
    value: Mapped[str] = mapped_column(Text)
