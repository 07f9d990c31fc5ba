"""Client-side synchronization of a timesheet.

A `TimesheetSyncSession` holds two snapshots of one timesheet: `remote` (the
last copy the server returned) and `local` (what the user sees). Edits land
on `local` immediately with hours recomputed, then travel to the server:

- day-type, extra-hours and vacation changes are sent at once;
- time-field changes wait for a quiet period, after which a submission pass
  pushes every pending day and then submits the timesheet. Any later edit
  restarts a pending quiet period.

Only day, week and vacation fields are client-writable. Status, submission
time and pay period always come from the server copy. A rejected change stays
in `local` and is reported through `errors` until it succeeds or is dismissed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx
import pydantic

from timekeeper.calculator import compute_day_hours
from timekeeper.config import settings
from timekeeper.errors import (
    ERRORS_BY_CODE,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TimesheetError,
    TransportError,
    ValidationError,
)
from timekeeper.models import DayOfWeek, DayType, TimesheetStatus
from timekeeper.policy import TimesheetPolicy
from timekeeper.schemas import DayEntry, DayEntryUpdate, TimesheetRead
from timekeeper.validation import has_incomplete_pair, validate_timesheet

logger = logging.getLogger(__name__)

TIME_FIELDS = ("start_time", "end_time", "lunch_start_time", "lunch_end_time")

# Keys identifying one client-writable field group:
#   ("day", week, DayOfWeek), ("extra", week), ("vacation",)
# plus ("submit",) and ("recall",) for lifecycle actions.
FieldKey = tuple[Any, ...]
SUBMIT_KEY: FieldKey = ("submit",)
RECALL_KEY: FieldKey = ("recall",)


def day_key(week_number: int, day_of_week: DayOfWeek) -> FieldKey:
    return ("day", week_number, day_of_week)


def extra_key(week_number: int) -> FieldKey:
    return ("extra", week_number)


VACATION_KEY: FieldKey = ("vacation",)


class TimesheetTransport(Protocol):
    async def update_day_entry(
        self, timesheet_id: int, week_number: int, day_of_week: DayOfWeek, entry: DayEntryUpdate
    ) -> TimesheetRead: ...

    async def update_extra_hours(self, timesheet_id: int, week_number: int, hours: float) -> TimesheetRead: ...

    async def update_vacation_hours(self, timesheet_id: int, hours: float) -> TimesheetRead: ...

    async def submit_timesheet(self, timesheet_id: int) -> TimesheetRead: ...

    async def recall_timesheet(self, timesheet_id: int) -> TimesheetRead: ...


def error_from_response(response: httpx.Response) -> TimesheetError:
    """Rebuild the domain error carried by an API error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("error") or response.text or f"HTTP {response.status_code}"

    error_class = ERRORS_BY_CODE.get(body.get("code", ""))
    if error_class is None:
        error_class = {
            403: PermissionDeniedError,
            404: NotFoundError,
            409: ConflictError,
            422: ValidationError,
        }.get(response.status_code, TimesheetError)

    if error_class is ValidationError:
        return ValidationError(body.get("violations") or [str(message)])
    return error_class(str(message))


class HttpTimesheetTransport:
    """`TimesheetTransport` over the JSON API.

    The client is expected to carry the session cookie. Conflict and not-found
    responses are retried `retries` times before being raised.
    """

    def __init__(self, client: httpx.AsyncClient, retries: int = 1):
        self.client = client
        self.retries = retries

    async def _request(self, method: str, url: str, payload: dict | None = None) -> TimesheetRead:
        attempt = 0
        while True:
            try:
                response = await self.client.request(method, url, json=payload)
            except httpx.HTTPError as exc:
                raise TransportError(f"Could not reach server: {exc}") from exc
            if response.is_success:
                try:
                    return TimesheetRead.model_validate(response.json())
                except (ValueError, pydantic.ValidationError) as exc:
                    raise TransportError(f"Unreadable response from {method} {url}: {exc}") from exc

            error = error_from_response(response)
            if isinstance(error, (ConflictError, NotFoundError)) and attempt < self.retries:
                attempt += 1
                logger.warning("%s %s failed with %s; retrying", method, url, error.code)
                continue
            raise error

    async def update_day_entry(
        self, timesheet_id: int, week_number: int, day_of_week: DayOfWeek, entry: DayEntryUpdate
    ) -> TimesheetRead:
        return await self._request(
            "PUT",
            f"/api/timesheets/{timesheet_id}/weeks/{week_number}/days/{day_of_week.value}",
            entry.model_dump(mode="json", by_alias=True),
        )

    async def update_extra_hours(self, timesheet_id: int, week_number: int, hours: float) -> TimesheetRead:
        return await self._request(
            "PUT", f"/api/timesheets/{timesheet_id}/weeks/{week_number}/extra-hours", {"hours": hours}
        )

    async def update_vacation_hours(self, timesheet_id: int, hours: float) -> TimesheetRead:
        return await self._request("PUT", f"/api/timesheets/{timesheet_id}/vacation-hours", {"hours": hours})

    async def submit_timesheet(self, timesheet_id: int) -> TimesheetRead:
        return await self._request("POST", f"/api/timesheets/{timesheet_id}/submit")

    async def recall_timesheet(self, timesheet_id: int) -> TimesheetRead:
        return await self._request("POST", f"/api/timesheets/{timesheet_id}/recall")


class DebounceTimer:
    """Run `callback` once `delay` seconds pass without another `schedule()`.

    Only the waiting phase is cancellable; a callback that already started
    runs to completion.
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]]):
        self.delay = delay
        self._callback = callback
        self._waiting: asyncio.Task | None = None
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._waiting is not None and not self._waiting.done()

    @property
    def active(self) -> bool:
        """True while waiting or while the callback runs."""
        return self.pending or bool(self._running)

    def schedule(self) -> None:
        self.cancel()
        self._waiting = asyncio.get_running_loop().create_task(self._wait_then_fire())

    def cancel(self) -> None:
        if self.pending:
            self._waiting.cancel()
        self._waiting = None

    async def _wait_then_fire(self) -> None:
        await asyncio.sleep(self.delay)
        task = asyncio.current_task()
        self._waiting = None
        self._running.add(task)
        try:
            await self._callback()
        finally:
            self._running.discard(task)

    async def wait(self) -> None:
        """Wait for a scheduled callback to fire and finish."""
        tasks = [task for task in (self._waiting, *self._running) if task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def apply_day_edit(
    snapshot: TimesheetRead,
    week_number: int,
    day_of_week: DayOfWeek,
    changes: dict[str, Any],
    policy: TimesheetPolicy,
) -> TimesheetRead:
    """Return a copy of `snapshot` with one day changed and its hours recomputed."""
    updated = snapshot.model_copy(deep=True)
    week = updated.week(week_number)
    day = DayEntry.model_validate({**week.day(day_of_week).model_dump(), **changes})
    if day.day_type != DayType.REGULAR:
        day = day.model_copy(update={name: None for name in TIME_FIELDS})
    day.total_hours = compute_day_hours(day, policy)
    week.days[day_of_week.offset] = day
    return updated


def reconcile(local: TimesheetRead, remote: TimesheetRead, dirty: set[FieldKey]) -> TimesheetRead:
    """Merge the server copy with unsent local edits.

    Everything comes from `remote` except the field groups named in `dirty`,
    which keep their local values.
    """
    merged = remote.model_copy(deep=True)
    for key in dirty:
        if key[0] == "day":
            _, week_number, day_of_week = key
            merged.week(week_number).days[day_of_week.offset] = local.week(week_number).day(day_of_week).model_copy()
        elif key[0] == "extra":
            merged.week(key[1]).extra_hours = local.week(key[1]).extra_hours
        elif key == VACATION_KEY:
            merged.vacation_hours = local.vacation_hours
    return merged


def has_incomplete_pairs(snapshot: TimesheetRead) -> bool:
    return any(has_incomplete_pair(day) for week in (snapshot.week1, snapshot.week2) for day in week.days)


class TimesheetSyncSession:
    """Optimistic local editing of one timesheet, propagated to a transport.

    Methods that start propagation must be called from a running event loop.
    """

    def __init__(
        self,
        transport: TimesheetTransport,
        snapshot: TimesheetRead,
        policy: TimesheetPolicy,
        debounce_seconds: float | None = None,
    ):
        self.transport = transport
        self.policy = policy
        self.remote = snapshot
        self.local = snapshot.model_copy(deep=True)
        self.errors: dict[FieldKey, str] = {}
        self._dirty: set[FieldKey] = set()
        self._versions: dict[FieldKey, int] = {}
        self._in_flight: dict[FieldKey, asyncio.Task] = {}
        delay = settings.auto_submit_delay_seconds if debounce_seconds is None else debounce_seconds
        self._timer = DebounceTimer(delay, self._auto_submit)

    @property
    def timesheet_id(self) -> int:
        return self.remote.id

    @property
    def dirty(self) -> frozenset[FieldKey]:
        return frozenset(self._dirty)

    @property
    def auto_submit_pending(self) -> bool:
        return self._timer.pending

    def dismiss_error(self, key: FieldKey) -> None:
        self.errors.pop(key, None)

    def _touch(self, key: FieldKey) -> None:
        self._dirty.add(key)
        self._versions[key] = self._versions.get(key, 0) + 1

    def _restart_quiet_period(self) -> None:
        """Any edit pushes a pending auto-submit back by a full quiet period."""
        if self._timer.pending:
            self._timer.schedule()

    # Local edits

    def edit_time(self, week_number: int, day_of_week: DayOfWeek, field: str, value: str | None) -> DayEntry:
        """Change one time field; propagation waits for the auto-submit pass."""
        if field not in TIME_FIELDS:
            raise ValueError(f"Unknown time field {field!r}")
        self._timer.cancel()
        key = day_key(week_number, day_of_week)
        self._supersede(key)
        self.local = apply_day_edit(self.local, week_number, day_of_week, {field: value or None}, self.policy)
        self._touch(key)
        self._timer.schedule()
        return self.local.week(week_number).day(day_of_week)

    def set_day_type(self, week_number: int, day_of_week: DayOfWeek, day_type: DayType) -> asyncio.Task:
        self._restart_quiet_period()
        key = day_key(week_number, day_of_week)
        self.local = apply_day_edit(self.local, week_number, day_of_week, {"day_type": day_type}, self.policy)
        self._touch(key)
        return self._send_day(week_number, day_of_week)

    def set_extra_hours(self, week_number: int, hours: float) -> asyncio.Task:
        if hours < 0:
            raise ValueError("Extra hours cannot be negative")
        self._restart_quiet_period()
        key = extra_key(week_number)
        self.local = self.local.model_copy(deep=True)
        self.local.week(week_number).extra_hours = hours
        self._touch(key)
        return self._propagate(
            key, lambda: self.transport.update_extra_hours(self.timesheet_id, week_number, hours)
        )

    def set_vacation_hours(self, hours: float) -> asyncio.Task:
        if hours < 0:
            raise ValueError("Vacation hours cannot be negative")
        self._restart_quiet_period()
        self.local = self.local.model_copy(update={"vacation_hours": hours}, deep=True)
        self._touch(VACATION_KEY)
        return self._propagate(VACATION_KEY, lambda: self.transport.update_vacation_hours(self.timesheet_id, hours))

    # Propagation

    def _supersede(self, key: FieldKey) -> None:
        previous = self._in_flight.pop(key, None)
        if previous is not None and not previous.done():
            previous.cancel()

    def _send_day(self, week_number: int, day_of_week: DayOfWeek) -> asyncio.Task:
        day = self.local.week(week_number).day(day_of_week)
        entry = DayEntryUpdate.model_validate(day.model_dump(exclude={"day_of_week", "total_hours"}))
        return self._propagate(
            day_key(week_number, day_of_week),
            lambda: self.transport.update_day_entry(self.timesheet_id, week_number, day_of_week, entry),
        )

    def _propagate(self, key: FieldKey, send: Callable[[], Awaitable[TimesheetRead]]) -> asyncio.Task:
        self._supersede(key)
        task = asyncio.get_running_loop().create_task(self._run(key, send, self._versions.get(key, 0)))
        self._in_flight[key] = task
        return task

    async def _run(self, key: FieldKey, send: Callable[[], Awaitable[TimesheetRead]], version: int) -> bool:
        try:
            remote = await send()
        except TimesheetError as exc:
            self.errors[key] = str(exc)
            logger.warning("Timesheet %s: propagation of %s failed: %s", self.timesheet_id, key, exc)
            return False
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

        self.errors.pop(key, None)
        # A newer local edit to the same field stays dirty.
        if self._versions.get(key, 0) == version:
            self._dirty.discard(key)
        self._accept(remote)
        return True

    def _accept(self, remote: TimesheetRead) -> None:
        self.remote = remote
        self.local = reconcile(self.local, remote, self._dirty)

    # Submission

    async def _auto_submit(self) -> None:
        if has_incomplete_pairs(self.local):
            logger.debug("Timesheet %s: auto-submit skipped while a time pair is incomplete", self.timesheet_id)
            return
        await self.submit()

    async def submit(self) -> bool:
        """Push pending day edits, then submit. Returns True once the server accepted the submission."""
        self._timer.cancel()
        if self.remote.status != TimesheetStatus.DRAFT:
            status = self.remote.status.value
            self.errors[SUBMIT_KEY] = f"Only draft timesheets can be submitted; this one is {status}"
            logger.warning("Timesheet %s: submit refused in status %s", self.timesheet_id, status)
            return False

        pending_days = [key for key in self._dirty if key[0] == "day" and key not in self._in_flight]
        sends = [self._send_day(week_number, day_of_week) for _, week_number, day_of_week in pending_days]
        results = await asyncio.gather(*sends, *list(self._in_flight.values()), return_exceptions=True)
        if not all(result is True for result in results):
            self.errors[SUBMIT_KEY] = "Some changes could not be saved; fix them before submitting"
            return False

        result = validate_timesheet(self.local, self.policy)
        if not result.valid:
            self.errors[SUBMIT_KEY] = "; ".join(result.violations)
            return False

        try:
            remote = await self.transport.submit_timesheet(self.timesheet_id)
        except TimesheetError as exc:
            self.errors[SUBMIT_KEY] = str(exc)
            logger.warning("Timesheet %s: submission failed: %s", self.timesheet_id, exc)
            return False
        self.errors.pop(SUBMIT_KEY, None)
        self._accept(remote)
        logger.info("Timesheet %s submitted", self.timesheet_id)
        return True

    async def recall(self) -> bool:
        self._timer.cancel()
        try:
            remote = await self.transport.recall_timesheet(self.timesheet_id)
        except TimesheetError as exc:
            self.errors[RECALL_KEY] = str(exc)
            return False
        self.errors.pop(RECALL_KEY, None)
        self._accept(remote)
        return True

    async def drain(self) -> None:
        """Wait until the debounce timer and all in-flight propagations settle."""
        while self._timer.active or self._in_flight:
            await self._timer.wait()
            if self._in_flight:
                await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    def close(self) -> None:
        self._timer.cancel()
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
