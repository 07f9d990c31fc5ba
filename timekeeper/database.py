"""Database module.

Provides SQLAlchemy engine/session setup and migration bootstrap helpers so
schema changes are explicit, reproducible, and safe across environments.
"""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from timekeeper.config import settings

logger = logging.getLogger(__name__)

# Alembic revision that creates the initial timesheet schema.
BASELINE_REVISION = "3c1d8e5f2a7b"


class Base(DeclarativeBase):
    """Base declarative class for all ORM entities."""


def enable_sqlite_savepoints(db_engine: Engine) -> None:
    """Have SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite.

    Find-or-create of pay periods and timesheets relies on `begin_nested()`.
    """

    @event.listens_for(db_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(db_engine, "begin")
    def _emit_begin(connection) -> None:
        connection.exec_driver_sql("BEGIN")


connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, connect_args=connect_args, future=True)
if engine.dialect.name == "sqlite":
    enable_sqlite_savepoints(engine)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    """FastAPI dependency that yields a transaction-capable DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _has_existing_app_schema(db_engine: Engine) -> bool:
    """Return True when timesheet tables are already present in the database."""
    inspector = inspect(db_engine)
    existing_tables = set(inspector.get_table_names())
    sentinel_tables = {"users", "pay_periods", "timesheets"}
    return any(table in existing_tables for table in sentinel_tables)


def _has_alembic_version(db_engine: Engine) -> bool:
    """Return True when Alembic has already tracked this database."""
    inspector = inspect(db_engine)
    if "alembic_version" not in inspector.get_table_names():
        return False
    with db_engine.connect() as connection:
        row = connection.exec_driver_sql("SELECT version_num FROM alembic_version LIMIT 1").first()
    return row is not None and bool(row[0])


def _stamp_untracked_schema_if_required(alembic_cfg: Config, db_engine: Engine) -> None:
    """Stamp databases built with `create_all` to baseline before upgrade.

    Without this, a development database created outside Alembic would try to
    execute the baseline CREATE TABLE DDL again and fail at startup.
    """
    if _has_alembic_version(db_engine):
        return
    if not _has_existing_app_schema(db_engine):
        return

    logger.warning(
        "Detected schema without alembic_version; stamping revision %s before upgrade.",
        BASELINE_REVISION,
    )
    command.stamp(alembic_cfg, BASELINE_REVISION)


def run_migrations() -> None:
    """Apply migrations, stamping untracked databases first."""
    alembic_ini_path = Path(__file__).resolve().parent.parent / "alembic.ini"
    alembic_cfg = Config(str(alembic_ini_path))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)

    _stamp_untracked_schema_if_required(alembic_cfg, engine)
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations applied successfully")
