"""Mini-README: Tests that configuration resolves the `.env` path deterministically.

These checks keep bootstrap credentials and the database URL stable when the
service is started from a directory other than the repository root.
"""

from pathlib import Path

from timekeeper.config import ENV_FILE_PATH, PROJECT_ROOT, Settings


def test_env_file_path_is_absolute_and_repo_relative() -> None:
    """Ensure settings look for `.env` in the repository root, not cwd."""
    assert ENV_FILE_PATH.is_absolute()
    assert ENV_FILE_PATH == PROJECT_ROOT / ".env"
    assert Settings.model_config["env_file"] == ENV_FILE_PATH


def test_project_root_matches_package_parent() -> None:
    """Guard rail: keep project root aligned with `timekeeper/` parent folder."""
    assert PROJECT_ROOT == Path(__file__).resolve().parents[1]


def test_environment_overrides_defaults(monkeypatch) -> None:
    monkeypatch.setenv("AUTO_SUBMIT_DELAY_SECONDS", "0.5")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    configured = Settings(_env_file=None)

    assert configured.auto_submit_delay_seconds == 0.5
    assert configured.log_level == "DEBUG"
