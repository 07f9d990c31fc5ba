"""Timesheet policy (the administrator-editable rule set).

The policy is a plain value passed explicitly into every calculation and
validation call. It is persisted as JSON in the `app_config` key/value table
and merged over the defaults below on load, so newly added fields pick up a
sensible value without a data migration.
"""

from __future__ import annotations

import datetime as dt
import json
import logging

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from sqlalchemy.orm import Session

from timekeeper.models import AppConfig, DayType

logger = logging.getLogger(__name__)

POLICY_CONFIG_KEY = "timesheet_policy"
PAY_PERIOD_DAYS = 14


class Holiday(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    date: dt.date
    name: str = Field(min_length=1, max_length=120)
    hours_default: float | None = Field(default=None, ge=0, le=24)


class TimesheetPolicy(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    # Time entry rules
    max_daily_hours: float = Field(default=15, gt=0, le=24)
    max_weekly_hours: float = Field(default=50, gt=0)
    min_lunch_duration: int = Field(default=30, ge=0)
    max_lunch_duration: int = Field(default=60, ge=0)
    # Minutes since midnight (420 = 07:00, 1200 = 20:00).
    min_start_time: int = Field(default=420, ge=0, lt=1440)
    max_end_time: int = Field(default=1200, gt=0, lt=1440)

    # Hour classification
    overtime_threshold: float = Field(default=40, ge=0)
    double_time_threshold: float = Field(default=60, ge=0)

    # Leave and holidays
    holiday_hours_default: float = Field(default=8, ge=0, le=24)
    holiday_pay_multiplier: float = Field(default=1.5, ge=0)
    holidays: list[Holiday] = Field(default_factory=list)

    # Entry windows
    allow_future_time_entry: bool = False
    allow_past_time_entry: bool = True
    past_time_entry_limit: int = Field(default=14, ge=0)

    # Pay periods
    pay_period_start_date: dt.date = dt.date(2024, 1, 1)
    pay_period_length: int = PAY_PERIOD_DAYS

    @model_validator(mode="after")
    def _check_consistency(self) -> TimesheetPolicy:
        if self.min_start_time >= self.max_end_time:
            raise ValueError("minStartTime must be earlier than maxEndTime")
        if self.overtime_threshold > self.double_time_threshold:
            raise ValueError("overtimeThreshold cannot exceed doubleTimeThreshold")
        if self.min_lunch_duration > self.max_lunch_duration:
            raise ValueError("minLunchDuration cannot exceed maxLunchDuration")
        if self.pay_period_length != PAY_PERIOD_DAYS:
            raise ValueError(f"payPeriodLength must be {PAY_PERIOD_DAYS} days (two Monday-Friday weeks)")
        if self.pay_period_start_date.weekday() != 0:
            raise ValueError("payPeriodStartDate must be a Monday")
        return self

    def default_hours_for(self, day_type: DayType) -> float:
        """Fixed hours credited for a non-regular day."""
        if day_type == DayType.REGULAR:
            raise ValueError("Regular days derive hours from their times")
        return self.holiday_hours_default

    def holiday_on(self, day: dt.date) -> Holiday | None:
        for holiday in self.holidays:
            if holiday.date == day:
                return holiday
        return None


DEFAULT_POLICY = TimesheetPolicy()


def load_policy(db: Session) -> TimesheetPolicy:
    """Return the stored policy merged over defaults."""
    row = db.scalar(select(AppConfig).where(AppConfig.key == POLICY_CONFIG_KEY))
    if row is None:
        return DEFAULT_POLICY
    stored = json.loads(row.value)
    merged = {**DEFAULT_POLICY.model_dump(by_alias=True, mode="json"), **stored}
    return TimesheetPolicy.model_validate(merged)


def save_policy(db: Session, policy: TimesheetPolicy) -> TimesheetPolicy:
    """Upsert the policy row; takes effect on the next validation call."""
    value = policy.model_dump_json(by_alias=True)
    row = db.scalar(select(AppConfig).where(AppConfig.key == POLICY_CONFIG_KEY))
    if row:
        row.value = value
    else:
        db.add(AppConfig(key=POLICY_CONFIG_KEY, value=value))
    db.commit()
    logger.info("Timesheet policy updated")
    return policy
