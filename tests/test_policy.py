"""Mini-README: Tests for the stored, administrator-editable timesheet policy."""

from __future__ import annotations

import json
from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from timekeeper.models import AppConfig, DayType
from timekeeper.policy import DEFAULT_POLICY, POLICY_CONFIG_KEY, Holiday, TimesheetPolicy, load_policy, save_policy


def test_defaults_when_nothing_stored(db) -> None:
    policy = load_policy(db)

    assert policy == DEFAULT_POLICY
    assert policy.max_daily_hours == 15
    assert policy.min_start_time == 420
    assert policy.pay_period_length == 14


def test_save_then_load(db) -> None:
    saved = save_policy(
        db, TimesheetPolicy(max_weekly_hours=40, holidays=[Holiday(date=date(2024, 7, 4), name="Fourth")])
    )

    loaded = load_policy(db)

    assert loaded == saved
    assert loaded.holiday_on(date(2024, 7, 4)).name == "Fourth"
    assert db.query(AppConfig).count() == 1


def test_partial_stored_values_merge_over_defaults(db) -> None:
    db.add(AppConfig(key=POLICY_CONFIG_KEY, value=json.dumps({"maxWeeklyHours": 44, "allowFutureTimeEntry": True})))
    db.commit()

    policy = load_policy(db)

    assert policy.max_weekly_hours == 44
    assert policy.allow_future_time_entry is True
    assert policy.max_daily_hours == DEFAULT_POLICY.max_daily_hours


def test_wire_format_is_camel_case() -> None:
    payload = DEFAULT_POLICY.model_dump(by_alias=True, mode="json")

    assert payload["maxDailyHours"] == 15
    assert payload["payPeriodStartDate"] == "2024-01-01"
    assert TimesheetPolicy.model_validate({"pastTimeEntryLimit": 3}).past_time_entry_limit == 3


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_start_time": 1200, "max_end_time": 420},
        {"overtime_threshold": 70, "double_time_threshold": 60},
        {"min_lunch_duration": 90, "max_lunch_duration": 60},
        {"pay_period_length": 7},
        {"pay_period_start_date": date(2024, 1, 2)},
        {"max_end_time": 1440},
    ],
)
def test_inconsistent_policy_is_rejected(overrides: dict) -> None:
    with pytest.raises(PydanticValidationError):
        TimesheetPolicy(**overrides)


def test_default_hours_only_for_non_regular_days() -> None:
    assert DEFAULT_POLICY.default_hours_for(DayType.HOLIDAY) == 8
    with pytest.raises(ValueError):
        DEFAULT_POLICY.default_hours_for(DayType.REGULAR)
