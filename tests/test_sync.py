"""Mini-README: Tests for optimistic client edits, debounced auto-submit and reconcile.

`ServiceTransport` drives the real service layer against the test database, so
the session sees the same validation and lifecycle rules as the HTTP API.
"""

from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from timekeeper import services_timesheets as timesheets
from timekeeper.errors import ConflictError, TransportError, ValidationError
from timekeeper.models import DayOfWeek, DayType, TimesheetStatus
from timekeeper.schemas import DayEntryUpdate, TimesheetRead
from timekeeper.sync import (
    SUBMIT_KEY,
    DebounceTimer,
    HttpTimesheetTransport,
    TimesheetSyncSession,
    apply_day_edit,
    day_key,
    extra_key,
    reconcile,
)

TODAY = date(2024, 3, 22)
AFTER_FREEZE = date(2024, 3, 27)


class ServiceTransport:
    def __init__(self, db, actor, policy, today=TODAY):
        self.db = db
        self.actor = actor
        self.policy = policy
        self.today = today
        self.calls: list[tuple] = []

    async def update_day_entry(self, timesheet_id, week_number, day_of_week, entry: DayEntryUpdate):
        self.calls.append(("day", week_number, day_of_week))
        return timesheets.update_day_entry(
            self.db, timesheet_id, week_number, day_of_week, entry, self.actor, self.policy, today=self.today
        )

    async def update_extra_hours(self, timesheet_id, week_number, hours):
        self.calls.append(("extra", week_number, hours))
        return timesheets.update_extra_hours(self.db, timesheet_id, week_number, hours, self.actor, today=self.today)

    async def update_vacation_hours(self, timesheet_id, hours):
        self.calls.append(("vacation", hours))
        return timesheets.update_vacation_hours(self.db, timesheet_id, hours, self.actor, today=self.today)

    async def submit_timesheet(self, timesheet_id):
        self.calls.append(("submit",))
        return timesheets.submit_timesheet(self.db, timesheet_id, self.actor, self.policy)

    async def recall_timesheet(self, timesheet_id):
        self.calls.append(("recall",))
        return timesheets.recall_timesheet(self.db, timesheet_id, self.actor)


@pytest.fixture
def snapshot(db, employee, period, policy) -> TimesheetRead:
    return TimesheetRead.from_model(timesheets.get_or_create_timesheet(db, employee.id, period.id, policy))


def _type_full_day(session: TimesheetSyncSession, week: int, day: DayOfWeek) -> None:
    session.edit_time(week, day, "start_time", "09:00")
    session.edit_time(week, day, "end_time", "17:00")
    session.edit_time(week, day, "lunch_start_time", "12:00")
    session.edit_time(week, day, "lunch_end_time", "12:30")


def test_debounce_timer_fires_once_after_last_schedule() -> None:
    async def scenario() -> int:
        fired = []

        async def callback() -> None:
            fired.append(True)

        timer = DebounceTimer(0.05, callback)
        timer.schedule()
        await asyncio.sleep(0.02)
        timer.schedule()
        await asyncio.sleep(0.02)
        timer.schedule()
        assert timer.pending
        await timer.wait()
        return len(fired)

    assert asyncio.run(scenario()) == 1


def test_cancelled_debounce_never_fires() -> None:
    async def scenario() -> list:
        fired = []

        async def callback() -> None:
            fired.append(True)

        timer = DebounceTimer(0.01, callback)
        timer.schedule()
        timer.cancel()
        await asyncio.sleep(0.05)
        assert not timer.pending
        return fired

    assert asyncio.run(scenario()) == []


def test_time_edit_updates_local_copy_immediately(db, employee, policy, snapshot) -> None:
    async def scenario():
        transport = ServiceTransport(db, employee, policy)
        session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=60)
        _type_full_day(session, 1, DayOfWeek.MONDAY)
        observed = (
            session.local.week1.day(DayOfWeek.MONDAY).total_hours,
            session.local.total_hours,
            session.remote.total_hours,
            list(transport.calls),
            session.auto_submit_pending,
        )
        session.close()
        return observed

    local_day, local_total, remote_total, calls, pending = asyncio.run(scenario())

    assert (local_day, local_total, remote_total) == (7.5, 7.5, 0)
    assert calls == []
    assert pending is True


def test_quiet_period_flushes_edits_then_submits(db, employee, policy, snapshot) -> None:
    async def scenario():
        transport = ServiceTransport(db, employee, policy)
        session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=0.01)
        _type_full_day(session, 1, DayOfWeek.MONDAY)
        _type_full_day(session, 1, DayOfWeek.TUESDAY)
        await session.drain()
        return session, transport.calls

    session, calls = asyncio.run(scenario())

    assert sorted(call for call in calls if call[0] == "day") == [
        ("day", 1, DayOfWeek.MONDAY),
        ("day", 1, DayOfWeek.TUESDAY),
    ]
    assert calls[-1] == ("submit",)
    assert session.remote.status == TimesheetStatus.SUBMITTED
    assert session.local.status == TimesheetStatus.SUBMITTED
    assert session.remote.week1.total_hours == 15.0
    assert session.dirty == frozenset()
    assert session.errors == {}


def test_auto_submit_waits_for_complete_pairs(db, employee, policy, snapshot) -> None:
    async def scenario():
        transport = ServiceTransport(db, employee, policy)
        session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=0.01)
        session.edit_time(1, DayOfWeek.MONDAY, "start_time", "09:00")
        await session.drain()
        return session, transport.calls

    session, calls = asyncio.run(scenario())

    assert calls == []
    assert session.remote.status == TimesheetStatus.DRAFT
    assert session.local.week1.day(DayOfWeek.MONDAY).start_time == "09:00"
    assert day_key(1, DayOfWeek.MONDAY) in session.dirty


def test_invalid_timesheet_is_not_submitted(db, employee, policy, snapshot) -> None:
    async def scenario():
        transport = ServiceTransport(db, employee, policy)
        session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=0.01)
        session.edit_time(1, DayOfWeek.MONDAY, "start_time", "06:00")
        session.edit_time(1, DayOfWeek.MONDAY, "end_time", "10:00")
        await session.drain()
        return session, transport.calls

    session, calls = asyncio.run(scenario())

    assert calls == [("day", 1, DayOfWeek.MONDAY)]
    assert "Week 1 Monday: Start time must be at or after 07:00" in session.errors[SUBMIT_KEY]
    assert session.remote.week1.day(DayOfWeek.MONDAY).start_time == "06:00"
    assert session.remote.status == TimesheetStatus.DRAFT


def test_day_type_change_is_sent_directly(db, employee, policy, snapshot) -> None:
    async def scenario():
        transport = ServiceTransport(db, employee, policy)
        session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=60)
        sent = await session.set_day_type(2, DayOfWeek.FRIDAY, DayType.VACATION)
        return sent, session, transport.calls

    sent, session, calls = asyncio.run(scenario())

    assert sent is True
    assert calls == [("day", 2, DayOfWeek.FRIDAY)]
    assert session.remote.week2.day(DayOfWeek.FRIDAY).day_type == DayType.VACATION
    assert session.remote.week2.day(DayOfWeek.FRIDAY).total_hours == 8
    assert session.local == session.remote


def test_rejected_edit_is_kept_and_flagged(db, employee, policy, snapshot) -> None:
    async def scenario():
        transport = ServiceTransport(db, employee, policy, today=AFTER_FREEZE)
        session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=60)
        sent = await session.set_vacation_hours(16)
        return sent, session

    sent, session = asyncio.run(scenario())

    assert sent is False
    assert session.local.vacation_hours == 16
    assert session.remote.vacation_hours == 0
    assert "pay period that has ended" in session.errors[("vacation",)]

    session.dismiss_error(("vacation",))
    assert session.errors == {}
    assert session.local.vacation_hours == 16


def test_new_edit_supersedes_in_flight_propagation(db, employee, policy, snapshot) -> None:
    class GatedTransport(ServiceTransport):
        def __init__(self, *args):
            super().__init__(*args)
            self.gate = asyncio.Event()

        async def update_extra_hours(self, timesheet_id, week_number, hours):
            if not self.calls:
                self.calls.append(("blocked", hours))
                await self.gate.wait()
            return await super().update_extra_hours(timesheet_id, week_number, hours)

    async def scenario():
        transport = GatedTransport(db, employee, policy)
        session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=60)
        first = session.set_extra_hours(1, 2)
        await asyncio.sleep(0)
        second = session.set_extra_hours(1, 3)
        await asyncio.gather(first, second, return_exceptions=True)
        return first, second, session, transport.calls

    first, second, session, calls = asyncio.run(scenario())

    assert first.cancelled()
    assert second.result() is True
    assert calls == [("blocked", 2), ("extra", 1, 3)]
    assert session.remote.week1.extra_hours == 3
    assert extra_key(1) not in session.dirty


def test_reconcile_keeps_dirty_fields_and_server_status(db, employee, policy, snapshot) -> None:
    local = apply_day_edit(snapshot, 1, DayOfWeek.MONDAY, {"start_time": "08:00", "end_time": "16:00"}, policy)
    local = local.model_copy(update={"status": TimesheetStatus.DRAFT, "vacation_hours": 5})
    remote = apply_day_edit(snapshot, 1, DayOfWeek.TUESDAY, {"day_type": DayType.HOLIDAY}, policy)
    remote = remote.model_copy(update={"status": TimesheetStatus.APPROVED})

    merged = reconcile(local, remote, {day_key(1, DayOfWeek.MONDAY)})

    assert merged.status == TimesheetStatus.APPROVED
    assert merged.pay_period_id == remote.pay_period_id
    assert merged.week1.day(DayOfWeek.MONDAY).total_hours == 8.0
    assert merged.week1.day(DayOfWeek.TUESDAY).day_type == DayType.HOLIDAY
    assert merged.vacation_hours == remote.vacation_hours


def test_apply_day_edit_normalizes_non_regular_days(policy, snapshot) -> None:
    edited = apply_day_edit(snapshot, 1, DayOfWeek.MONDAY, {"start_time": "09:00", "end_time": "17:00"}, policy)
    sick = apply_day_edit(edited, 1, DayOfWeek.MONDAY, {"day_type": DayType.SICK}, policy)

    monday = sick.week1.day(DayOfWeek.MONDAY)
    assert (monday.start_time, monday.end_time, monday.total_hours) == (None, None, 8)
    assert snapshot.week1.day(DayOfWeek.MONDAY).start_time is None


def _http_transport(handler) -> tuple[httpx.AsyncClient, HttpTimesheetTransport]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://timekeeper.test")
    return client, HttpTimesheetTransport(client)


def test_http_transport_retries_conflict_once(snapshot) -> None:
    responses = [
        httpx.Response(409, json={"error": "Pay period overlaps", "code": "conflict"}),
        httpx.Response(200, json=snapshot.model_dump(mode="json", by_alias=True)),
    ]
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return responses.pop(0)

    async def scenario():
        client, transport = _http_transport(handler)
        async with client:
            return await transport.update_vacation_hours(snapshot.id, 4)

    result = asyncio.run(scenario())

    assert result.id == snapshot.id
    assert seen == [f"/api/timesheets/{snapshot.id}/vacation-hours"] * 2


def test_http_transport_raises_after_second_conflict(snapshot) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"error": "Still conflicting", "code": "conflict"})

    async def scenario():
        client, transport = _http_transport(handler)
        async with client:
            await transport.submit_timesheet(snapshot.id)

    with pytest.raises(ConflictError, match="Still conflicting"):
        asyncio.run(scenario())


def test_http_transport_maps_validation_without_retry(snapshot) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        body = {"error": "a; b", "code": "validation", "violations": ["a", "b"]}
        return httpx.Response(422, json=body)

    async def scenario():
        client, transport = _http_transport(handler)
        async with client:
            await transport.update_day_entry(snapshot.id, 1, DayOfWeek.MONDAY, DayEntryUpdate(start_time="09:00"))

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.violations == ["a", "b"]
    assert calls == ["PUT"]


def test_http_transport_wraps_network_errors(snapshot) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        client, transport = _http_transport(handler)
        async with client:
            await transport.recall_timesheet(snapshot.id)

    with pytest.raises(TransportError, match="connection refused"):
        asyncio.run(scenario())


def test_direct_edit_restarts_pending_auto_submit(db, employee, policy, snapshot) -> None:
    async def scenario():
        transport = ServiceTransport(db, employee, policy)
        session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=0.4)
        _type_full_day(session, 1, DayOfWeek.MONDAY)
        await asyncio.sleep(0.2)
        await session.set_day_type(1, DayOfWeek.TUESDAY, DayType.SICK)
        pending_after_edit = session.auto_submit_pending
        # Past the original deadline, still inside the restarted quiet period.
        await asyncio.sleep(0.3)
        calls_before_deadline = list(transport.calls)
        await session.drain()
        return pending_after_edit, calls_before_deadline, session, transport.calls

    pending_after_edit, calls_before_deadline, session, calls = asyncio.run(scenario())

    assert pending_after_edit is True
    assert ("submit",) not in calls_before_deadline
    assert calls[-1] == ("submit",)
    assert session.remote.status == TimesheetStatus.SUBMITTED


def test_direct_edit_without_time_edits_schedules_nothing(db, employee, policy, snapshot) -> None:
    async def scenario():
        transport = ServiceTransport(db, employee, policy)
        session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=0.01)
        await session.set_extra_hours(1, 2)
        pending = session.auto_submit_pending
        await session.drain()
        return pending, transport.calls

    pending, calls = asyncio.run(scenario())

    assert pending is False
    assert calls == [("extra", 1, 2)]


def test_submit_of_non_draft_is_flagged(db, employee, policy, snapshot) -> None:
    async def scenario():
        session = TimesheetSyncSession(ServiceTransport(db, employee, policy), snapshot, policy, debounce_seconds=60)
        first = await session.submit()
        second = await session.submit()
        return first, second, session

    first, second, session = asyncio.run(scenario())

    assert first is True
    assert second is False
    assert session.errors[SUBMIT_KEY] == "Only draft timesheets can be submitted; this one is submitted"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, content=b"<html>gateway</html>"),
        httpx.Response(200, json={"id": "not-a-timesheet"}),
    ],
)
def test_http_transport_wraps_unreadable_responses(snapshot, response: httpx.Response) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    async def scenario():
        client, transport = _http_transport(handler)
        async with client:
            await transport.update_vacation_hours(snapshot.id, 4)

    with pytest.raises(TransportError, match="Unreadable response"):
        asyncio.run(scenario())


def test_unreadable_response_flags_the_field(db, employee, policy, snapshot) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    async def scenario():
        client, transport = _http_transport(handler)
        async with client:
            session = TimesheetSyncSession(transport, snapshot, policy, debounce_seconds=60)
            sent = await session.set_vacation_hours(6)
        return sent, session

    sent, session = asyncio.run(scenario())

    assert sent is False
    assert "Unreadable response" in session.errors[("vacation",)]
    assert session.local.vacation_hours == 6
