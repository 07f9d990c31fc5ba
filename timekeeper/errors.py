"""Domain error taxonomy.

Every failure raised by the timesheet core is one of these types. The HTTP
layer maps them onto status codes and the sync client maps status codes back
onto them, so both sides speak the same vocabulary.
"""

from __future__ import annotations


class TimesheetError(Exception):
    """Base exception for timesheet business rule failures."""

    code = "error"


class ValidationError(TimesheetError):
    """One or more policy violations; recoverable by editing and retrying."""

    code = "validation"

    def __init__(self, violations: list[str] | str):
        if isinstance(violations, str):
            violations = [violations]
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "Validation failed")


class StateError(TimesheetError):
    """Raised for an illegal lifecycle transition or an edit in a locked state."""

    code = "state"


class ConflictError(TimesheetError):
    """Raised when a pay period overlaps another or a find-or-create race is lost twice."""

    code = "conflict"


class NotFoundError(TimesheetError):
    """Raised for an unknown timesheet, pay period or user id."""

    code = "not_found"


class PermissionDeniedError(TimesheetError):
    """Raised when the actor does not own the record or lacks the required role."""

    code = "permission_denied"


class TransportError(TimesheetError):
    """Raised by the sync client when the server could not be reached."""

    code = "transport"


ERRORS_BY_CODE: dict[str, type[TimesheetError]] = {
    error.code: error
    for error in (ValidationError, StateError, ConflictError, NotFoundError, PermissionDeniedError)
}
