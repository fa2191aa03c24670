"""Configuration package for SprintMetrics."""

from sprintmetrics.config.loader import (
    configure_logging,
    get_config,
    load_settings,
    reload_config,
    require_gitlab_credentials,
    reset_config,
)
from sprintmetrics.config.settings import (
    CacheSettings,
    GitLabSettings,
    LoggingSettings,
    Settings,
)

__all__ = [
    "CacheSettings",
    "GitLabSettings",
    "LoggingSettings",
    "Settings",
    "configure_logging",
    "get_config",
    "load_settings",
    "reload_config",
    "require_gitlab_credentials",
    "reset_config",
]
