"""Mini-README: Shared fixtures for database-backed tests.

Every test gets its own in-memory SQLite database with the full schema and
three accounts: two employees and one administrator.
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timekeeper import models  # noqa: F401
from timekeeper.database import Base, enable_sqlite_savepoints
from timekeeper.models import PayPeriod, Role, User
from timekeeper.pay_periods import resolve_current_period
from timekeeper.policy import DEFAULT_POLICY

# Wednesday of week 1 in the period 2024-03-11..2024-03-24.
REFERENCE_DATE = date(2024, 3, 13)


@pytest.fixture
def engine():
    test_engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    enable_sqlite_savepoints(test_engine)
    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def policy():
    return DEFAULT_POLICY


def _user(db, email: str, name: str, role: Role) -> User:
    user = User(email=email, full_name=name, hashed_password="not-a-real-hash", role=role)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def employee(db) -> User:
    return _user(db, "ana@company.com", "Ana Ruiz", Role.EMPLOYEE)


@pytest.fixture
def coworker(db) -> User:
    return _user(db, "ben@company.com", "Ben Okafor", Role.EMPLOYEE)


@pytest.fixture
def admin(db) -> User:
    return _user(db, "admin@company.com", "Ada Admin", Role.ADMIN)


@pytest.fixture
def period(db, policy) -> PayPeriod:
    return resolve_current_period(db, REFERENCE_DATE, policy)
