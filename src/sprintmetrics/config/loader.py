"""Settings loader and singleton accessor.

Loads ``.env`` through python-dotenv before building ``Settings`` and keeps
one lazily created instance per process.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import dotenv
from pydantic import ValidationError

from sprintmetrics.config.settings import LoggingSettings, Settings
from sprintmetrics.shared.errors import (
    ApplicationError,
    ErrorCode,
    ErrorContext,
    create_config_error,
)
from sprintmetrics.shared.logging import setup_structured_logger

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = Path(".env")


def load_settings(env_file: str | Path | None = DEFAULT_ENV_FILE) -> Settings:
    """Build a Settings instance from the environment.

    Variables already present in the process environment win over values
    from the ``.env`` file.

    Args:
        env_file: Optional .env file to load first. A missing file is ignored.

    Raises:
        ApplicationError: If the environment holds invalid values
    """
    if env_file is not None:
        env_path = Path(env_file)
        if env_path.exists():
            dotenv.load_dotenv(env_path, override=False)
            logger.debug("Loaded environment from %s", env_path)

    try:
        return Settings()
    except ValidationError as e:
        error = create_config_error(
            message=f"Invalid configuration: {e.error_count()} error(s)",
            operation="load_settings",
            original_error=e,
        )
        raise error from e


class SettingsLoader:
    """Thread-safe lazy holder for the process-wide Settings."""

    _instance: Settings | None = None
    _lock: threading.RLock = threading.RLock()

    def get_config(self) -> Settings:
        if self._instance is None:
            with self._lock:
                if self._instance is None:
                    self._instance = load_settings()
        return self._instance

    def reload_config(self, env_file: str | Path | None = DEFAULT_ENV_FILE) -> Settings:
        with self._lock:
            self._instance = load_settings(env_file)
        return self._instance

    def reset(self) -> None:
        with self._lock:
            self._instance = None


_loader = SettingsLoader()


def get_config() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return _loader.get_config()


def reload_config(env_file: str | Path | None = DEFAULT_ENV_FILE) -> Settings:
    return _loader.reload_config(env_file)


def reset_config() -> None:
    _loader.reset()


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Apply the LOG_* settings to the package logger."""
    return setup_structured_logger(
        "sprintmetrics",
        settings.level,
        settings.file,
        use_rich_console=settings.rich_console,
    )


def require_gitlab_credentials(settings: Settings) -> None:
    """Raise if the settings cannot be used to talk to GitLab.

    Raises:
        ApplicationError: If GITLAB_TOKEN or GITLAB_PROJECT_PATH is unset
    """
    missing = [
        name
        for name, value in (
            ("GITLAB_TOKEN", settings.gitlab.token),
            ("GITLAB_PROJECT_PATH", settings.gitlab.project_path),
        )
        if not value
    ]
    if missing:
        raise ApplicationError(
            ErrorCode.CONFIG_MISSING,
            f"Missing required configuration: {', '.join(missing)}",
            ErrorContext(
                operation="require_gitlab_credentials",
                additional_data={"config_key": missing[0]},
            ),
        )


__all__ = [
    "SettingsLoader",
    "configure_logging",
    "get_config",
    "load_settings",
    "reload_config",
    "require_gitlab_credentials",
    "reset_config",
]
