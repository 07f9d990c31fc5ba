"""Dependency helpers.

Provides authentication, role-gating and policy dependencies for FastAPI routes.
"""

from fastapi import Cookie, Depends, HTTPException, status
from sqlalchemy.orm import Session

from timekeeper.database import get_db
from timekeeper.models import Role, User
from timekeeper.policy import TimesheetPolicy, load_policy
from timekeeper.security import SESSION_COOKIE, read_session_token


def get_current_user(
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE), db: Session = Depends(get_db)
) -> User:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    user_id = read_session_token(session_token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")
    user = db.get(User, user_id)
    if not user or not user.active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    return user


def require_roles(*roles: Role):
    def _checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return _checker


def get_policy(db: Session = Depends(get_db)) -> TimesheetPolicy:
    """Policy is re-read per request so administrator changes apply on the next call."""
    return load_policy(db)
