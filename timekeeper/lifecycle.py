"""Timesheet lifecycle.

    draft      -> submitted   (submit, owner)
    submitted  -> draft       (recall, owner)
    submitted  -> approved    (approve, administrator)
    submitted  -> rejected    (reject, administrator)

Approved and rejected are terminal for the employee. An administrator may
still override the status out of band with `override_status`, which is the
one transition that bypasses this table.
"""

from __future__ import annotations

import logging
from datetime import datetime

from timekeeper.errors import StateError
from timekeeper.models import Timesheet, TimesheetStatus

logger = logging.getLogger(__name__)

TRANSITIONS: dict[tuple[TimesheetStatus, TimesheetStatus], str] = {
    (TimesheetStatus.DRAFT, TimesheetStatus.SUBMITTED): "submit",
    (TimesheetStatus.SUBMITTED, TimesheetStatus.DRAFT): "recall",
    (TimesheetStatus.SUBMITTED, TimesheetStatus.APPROVED): "approve",
    (TimesheetStatus.SUBMITTED, TimesheetStatus.REJECTED): "reject",
}

EDITABLE_STATUSES = {TimesheetStatus.DRAFT}


def can_transition(current: TimesheetStatus, target: TimesheetStatus) -> bool:
    return (current, target) in TRANSITIONS


def check_transition(current: TimesheetStatus, target: TimesheetStatus) -> str:
    """Return the transition name or raise StateError."""
    action = TRANSITIONS.get((current, target))
    if action is None:
        raise StateError(f"Cannot move a {current.value} timesheet to {target.value}")
    return action


def _stamp(timesheet: Timesheet, target: TimesheetStatus, now: datetime) -> None:
    # Status and submitted_at change together or not at all.
    if target == TimesheetStatus.SUBMITTED:
        submitted_at = now
    elif target == TimesheetStatus.DRAFT:
        submitted_at = None
    else:
        submitted_at = timesheet.submitted_at or now
    timesheet.status = target
    timesheet.submitted_at = submitted_at
    timesheet.updated_at = now


def transition(timesheet: Timesheet, target: TimesheetStatus, now: datetime) -> str:
    action = check_transition(timesheet.status, target)
    previous = timesheet.status
    _stamp(timesheet, target, now)
    logger.info("Timesheet %s %s: %s -> %s", timesheet.id, action, previous.value, target.value)
    return action


def override_status(timesheet: Timesheet, target: TimesheetStatus, now: datetime) -> None:
    previous = timesheet.status
    _stamp(timesheet, target, now)
    logger.warning("Timesheet %s status overridden: %s -> %s", timesheet.id, previous.value, target.value)


def ensure_editable(timesheet: Timesheet) -> None:
    if timesheet.status not in EDITABLE_STATUSES:
        raise StateError(f"Timesheet is {timesheet.status.value}; recall it before editing")
