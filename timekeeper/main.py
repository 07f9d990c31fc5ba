"""Application entrypoint.

This file wires the JSON API for timesheets, pay periods, policy settings and
reports, maps domain errors onto HTTP responses, and runs startup actions.
"""

import logging
from typing import Annotated

from fastapi import Depends, FastAPI, Path, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from timekeeper import services_timesheets as timesheets
from timekeeper.accounts import ensure_bootstrap_admin, find_user_by_email
from timekeeper.config import settings
from timekeeper.database import engine, get_db, run_migrations
from timekeeper.dependencies import get_current_user, get_policy, require_roles
from timekeeper.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    TimesheetError,
    ValidationError,
)
from timekeeper.models import DayOfWeek, Role, User
from timekeeper.pay_periods import create_pay_period, list_pay_periods, resolve_current_period
from timekeeper.policy import TimesheetPolicy, save_policy
from timekeeper.reports import timesheet_report
from timekeeper.schemas import (
    DayEntryUpdate,
    HoursUpdate,
    LoginRequest,
    PayPeriodCreate,
    PayPeriodListItem,
    PayPeriodRead,
    StatusOverride,
    TimesheetDecision,
    TimesheetRead,
    TimesheetReportRow,
)
from timekeeper.security import SESSION_COOKIE, create_session_token, ensure_password_backend, session_max_age, verify_and_update
from timekeeper.timeutils import today

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, debug=settings.debug)

ERROR_STATUS: dict[type[TimesheetError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StateError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
}

WeekNumber = Annotated[int, Path(ge=1, le=2)]


@app.exception_handler(TimesheetError)
def timesheet_error_handler(request: Request, exc: TimesheetError) -> JSONResponse:
    body: dict[str, object] = {"error": str(exc), "code": exc.code}
    if isinstance(exc, ValidationError):
        body["violations"] = exc.violations
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    logger.info("%s %s -> %s %s", request.method, request.url.path, status_code, exc.code)
    return JSONResponse(status_code=status_code, content=body)


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    run_migrations()
    ensure_password_backend()
    with Session(engine) as db:
        ensure_bootstrap_admin(db)


@app.post("/api/auth/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = find_user_by_email(db, payload.email)
    valid, new_hash = verify_and_update(payload.password, user.hashed_password) if user else (False, None)
    if not valid or not user.active:
        logger.info("Failed login for %s", payload.email)
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Invalid credentials"})
    if new_hash:
        user.hashed_password = new_hash
        db.commit()
    response = JSONResponse({"id": user.id, "email": user.email, "fullName": user.full_name, "role": user.role.value})
    response.set_cookie(
        SESSION_COOKIE,
        create_session_token(user.id),
        max_age=session_max_age(),
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )
    return response


@app.post("/api/auth/logout")
def logout():
    response = JSONResponse({"ok": True})
    response.delete_cookie(SESSION_COOKIE)
    return response


@app.get("/api/pay-periods/current", response_model=PayPeriodRead)
def current_pay_period(
    current_user: User = Depends(get_current_user),
    policy: TimesheetPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
):
    return resolve_current_period(db, today(), policy)


@app.get("/api/pay-periods", response_model=list[PayPeriodListItem])
def pay_periods(current_user: User = Depends(require_roles(Role.ADMIN)), db: Session = Depends(get_db)):
    return list_pay_periods(db)


@app.post("/api/pay-periods", response_model=PayPeriodRead, status_code=status.HTTP_201_CREATED)
def new_pay_period(
    payload: PayPeriodCreate,
    current_user: User = Depends(require_roles(Role.ADMIN)),
    policy: TimesheetPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
):
    return create_pay_period(db, payload.start_date, payload.end_date, policy)


@app.get("/api/timesheets/current", response_model=TimesheetRead)
def current_timesheet(
    current_user: User = Depends(get_current_user),
    policy: TimesheetPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
):
    return timesheets.get_current_timesheet(db, current_user, policy)


@app.get("/api/timesheets/previous", response_model=TimesheetRead)
def previous_timesheet(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return timesheets.get_previous_timesheet(db, current_user)


@app.get("/api/timesheets/{timesheet_id}", response_model=TimesheetRead)
def read_timesheet(timesheet_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return timesheets.get_timesheet(db, timesheet_id, current_user)


@app.put("/api/timesheets/{timesheet_id}/weeks/{week}/days/{day}", response_model=TimesheetRead)
def update_day(
    timesheet_id: int,
    week: WeekNumber,
    day: DayOfWeek,
    payload: DayEntryUpdate,
    current_user: User = Depends(get_current_user),
    policy: TimesheetPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
):
    return timesheets.update_day_entry(db, timesheet_id, week, day, payload, current_user, policy)


@app.put("/api/timesheets/{timesheet_id}/weeks/{week}/extra-hours", response_model=TimesheetRead)
def update_extra_hours(
    timesheet_id: int,
    week: WeekNumber,
    payload: HoursUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return timesheets.update_extra_hours(db, timesheet_id, week, payload.hours, current_user)


@app.put("/api/timesheets/{timesheet_id}/vacation-hours", response_model=TimesheetRead)
def update_vacation_hours(
    timesheet_id: int,
    payload: HoursUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return timesheets.update_vacation_hours(db, timesheet_id, payload.hours, current_user)


@app.post("/api/timesheets/{timesheet_id}/weeks/{week}/days/{day}/copy-previous", response_model=TimesheetRead)
def copy_previous_day(
    timesheet_id: int,
    week: WeekNumber,
    day: DayOfWeek,
    current_user: User = Depends(get_current_user),
    policy: TimesheetPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
):
    return timesheets.copy_previous_day(db, timesheet_id, week, day, current_user, policy)


@app.post("/api/timesheets/{timesheet_id}/copy-week", response_model=TimesheetRead)
def copy_week(
    timesheet_id: int,
    current_user: User = Depends(get_current_user),
    policy: TimesheetPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
):
    return timesheets.copy_week(db, timesheet_id, current_user, policy)


@app.post("/api/timesheets/{timesheet_id}/submit", response_model=TimesheetRead)
def submit(
    timesheet_id: int,
    current_user: User = Depends(get_current_user),
    policy: TimesheetPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
):
    return timesheets.submit_timesheet(db, timesheet_id, current_user, policy)


@app.post("/api/timesheets/{timesheet_id}/recall", response_model=TimesheetRead)
def recall(timesheet_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return timesheets.recall_timesheet(db, timesheet_id, current_user)


@app.post("/api/timesheets/{timesheet_id}/decision", response_model=TimesheetRead)
def decide(
    timesheet_id: int,
    payload: TimesheetDecision,
    current_user: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return timesheets.decide_timesheet(db, timesheet_id, current_user, payload.approve)


@app.put("/api/timesheets/{timesheet_id}/status", response_model=TimesheetRead)
def override_status(
    timesheet_id: int,
    payload: StatusOverride,
    current_user: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return timesheets.set_timesheet_status(db, timesheet_id, current_user, payload.status)


@app.get("/api/settings", response_model=TimesheetPolicy)
def read_settings(current_user: User = Depends(get_current_user), policy: TimesheetPolicy = Depends(get_policy)):
    return policy


@app.put("/api/settings", response_model=TimesheetPolicy)
def update_settings(
    payload: TimesheetPolicy,
    current_user: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return save_policy(db, payload)


@app.get("/api/reports/timesheets", response_model=list[TimesheetReportRow])
def report_timesheets(
    pay_period_id: int = Query(alias="payPeriodId"),
    user_id: int | None = Query(default=None, alias="userId"),
    current_user: User = Depends(require_roles(Role.ADMIN)),
    policy: TimesheetPolicy = Depends(get_policy),
    db: Session = Depends(get_db),
):
    return timesheet_report(db, pay_period_id, policy, user_id=user_id)


@app.get("/health")
def healthcheck():
    return {"status": "ok", "date": today().isoformat()}
