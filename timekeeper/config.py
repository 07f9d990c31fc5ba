"""Configuration module.

This file centralizes runtime configuration for local development and production
deployments. Values can be provided via environment variables or a local `.env`
file. Timesheet policy (hour limits, thresholds) is not configured here; it is
administrator-editable data, see `timekeeper.policy`.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE_PATH = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    app_name: str = "Timekeeper"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    secret_key: str = "change-me-in-production"
    database_url: str = "sqlite:///./timekeeper.db"
    host: str = "0.0.0.0"
    port: int = 8000
    secure_cookies: bool = False
    session_hours: int = 12
    bootstrap_admin_email: str = "admin@change.me"
    bootstrap_admin_password: str = "ChangeMeNow!123"
    auto_submit_delay_seconds: float = 2.0

    # Use an absolute path so `.env` is consistently discovered regardless of
    # the process working directory used to start uvicorn/gunicorn.
    model_config = SettingsConfigDict(env_file=ENV_FILE_PATH, env_file_encoding="utf-8")


settings = Settings()
