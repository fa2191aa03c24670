"""SprintMetrics settings models.

Each configuration domain is its own pydantic-settings model with an
environment prefix (``GITLAB_``, ``CACHE_``, ``LOG_``); ``Settings``
aggregates them.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sprintmetrics.shared.constants import CacheConfig, GitLabConfig, PaginationConfig


class GitLabSettings(BaseSettings):
    """GitLab API configuration.

    Security: token is hidden from ``repr`` so settings objects can be
    logged safely.
    """

    model_config = SettingsConfigDict(
        env_prefix="GITLAB_",
        env_ignore_empty=True,
        extra="ignore",
    )

    url: str = Field(
        default=GitLabConfig.DEFAULT_URL,
        description="Base URL of the GitLab instance",
    )
    token: str = Field(
        default="",
        repr=False,
        description="Personal or group access token with read_api scope",
    )
    project_path: str = Field(
        default="",
        description="Full path of the group whose iterations are analysed",
    )

    timeout: int = Field(
        default=GitLabConfig.DEFAULT_TIMEOUT,
        gt=0,
        description="Request timeout in seconds",
    )
    retry_attempts: int = Field(
        default=GitLabConfig.RETRY_ATTEMPTS,
        ge=0,
        description="Retries for retryable transport failures",
    )
    retry_delay: float = Field(
        default=GitLabConfig.RETRY_DELAY,
        ge=0,
        description="Base delay between retries in seconds (doubles per attempt)",
    )

    page_delay_ms: int = Field(
        default=PaginationConfig.PAGE_DELAY_MS,
        ge=0,
        description="Delay between result pages in milliseconds",
    )
    pipeline_page_delay_ms: int = Field(
        default=PaginationConfig.PIPELINE_PAGE_DELAY_MS,
        ge=0,
        description="Delay between pipeline result pages in milliseconds",
    )
    concurrent_requests: int = Field(
        default=GitLabConfig.CONCURRENT_REQUESTS,
        gt=0,
        description="Maximum concurrent per-item follow-up requests",
    )
    pipeline_ref: str = Field(
        default=GitLabConfig.DEFAULT_REF,
        description="Branch whose pipelines count as deployments",
    )

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def graphql_url(self) -> str:
        return f"{self.url}{GitLabConfig.GRAPHQL_PATH}"


class CacheSettings(BaseSettings):
    """Iteration cache and metric store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_ignore_empty=True,
        extra="ignore",
    )

    dir: str = Field(
        default=CacheConfig.DEFAULT_DIR,
        description="Directory holding one JSON file per cached iteration",
    )
    ttl_hours: float = Field(
        default=CacheConfig.DEFAULT_TTL_HOURS,
        ge=0,
        description="Cache time-to-live in hours (0 disables expiry)",
    )
    metrics_dir: str = Field(
        default=CacheConfig.METRICS_DIR,
        description="Directory holding the metrics.json store",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_ignore_empty=True,
        extra="ignore",
    )

    level: str = Field(default="INFO", description="Log level name")
    file: str | None = Field(default=None, description="Optional JSON log file")
    rich_console: bool = Field(default=True, description="Use rich console output")

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"Invalid log level: {value}"
            raise ValueError(msg)
        return upper


class Settings(BaseSettings):
    """Unified settings facade for all configuration domains."""

    model_config = SettingsConfigDict(
        env_prefix="SPRINTMETRICS_",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
    )

    gitlab: GitLabSettings = Field(default_factory=GitLabSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


__all__ = [
    "CacheSettings",
    "GitLabSettings",
    "LoggingSettings",
    "Settings",
]
