"""Mini-README: Account operational helpers.

User administration screens are not part of this service, so accounts are
seeded here: the bootstrap administrator on first startup, and employees or
password resets through `scripts/manage_users.py`.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timekeeper.config import settings
from timekeeper.errors import ConflictError, NotFoundError
from timekeeper.models import Role, User
from timekeeper.security import hash_password

logger = logging.getLogger(__name__)


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(func.lower(User.email) == email.strip().lower()))


def create_user(db: Session, *, email: str, full_name: str, password: str, role: Role = Role.EMPLOYEE) -> User:
    if find_user_by_email(db, email):
        raise ConflictError(f"A user with email {email} already exists")
    user = User(
        email=email.strip().lower(),
        full_name=full_name.strip(),
        hashed_password=hash_password(password),
        role=role,
    )
    db.add(user)
    db.commit()
    logger.info("Created %s account %s", role.value, user.email)
    return user


def reset_password(db: Session, *, email: str, new_password: str) -> User:
    user = find_user_by_email(db, email)
    if not user:
        raise NotFoundError(f"No user with email {email}")
    user.hashed_password = hash_password(new_password)
    db.commit()
    logger.info("Password reset for %s", user.email)
    return user


def set_active(db: Session, *, email: str, active: bool) -> User:
    user = find_user_by_email(db, email)
    if not user:
        raise NotFoundError(f"No user with email {email}")
    user.active = active
    db.commit()
    logger.info("Account %s %s", user.email, "activated" if active else "deactivated")
    return user


def ensure_bootstrap_admin(db: Session) -> bool:
    """Create the configured administrator when no administrator exists yet.

    Returns True when an account was created. Later changes to the bootstrap
    settings are ignored; use `reset_password` to rotate credentials.
    """
    admin_count = db.scalar(select(func.count(User.id)).where(User.role == Role.ADMIN))
    if admin_count:
        logger.info("Admin account present; bootstrap credentials are ignored after initial bootstrap")
        return False
    create_user(
        db,
        email=settings.bootstrap_admin_email,
        full_name="System Admin",
        password=settings.bootstrap_admin_password,
        role=Role.ADMIN,
    )
    return True
