"""
GitLab Query Constants

Page sizes, inter-page delays and matching patterns used by the GraphQL
domain clients.
"""

from typing import ClassVar


class GitLabConfig:
    """GitLab connection defaults."""

    DEFAULT_URL = "https://gitlab.com"
    GRAPHQL_PATH = "/api/graphql"
    DEFAULT_REF = "master"
    DEFAULT_TIMEOUT = 30  # seconds
    RETRY_ATTEMPTS = 3
    RETRY_DELAY = 1.0  # seconds
    CONCURRENT_REQUESTS = 5
    DEFAULT_BRANCHES: ClassVar[tuple[str, ...]] = ("main", "master")


class PaginationConfig:
    """Page sizes and delays for cursor pagination."""

    PAGE_SIZE = 100
    ISSUE_NOTES_PAGE_SIZE = 20
    ADDITIONAL_NOTES_PAGE_SIZE = 100

    PAGE_DELAY_MS = 100
    PIPELINE_PAGE_DELAY_MS = 50


class StatusChangeConfig:
    """Work item status change detection."""

    SYSTEM_NOTE_ACTION = "work_item_status"
    STATUS_PATTERN = r"set status to \*\*(.+?)\*\*"
    IN_PROGRESS_PATTERN = r"in progress|in-progress|wip|working"


class IncidentConfig:
    """Incident lookup and timeline tagging."""

    LOOKBACK_DAYS = 60

    TAG_START_TIME = "start time"
    TAG_END_TIME = "end time"
    TAG_STOP_TIME = "stop time"
    TAG_IMPACT_MITIGATED = "impact mitigated"

    MR_URL_PATTERN = r"https?://([^/\s]+)/((?:[^/\s]+/)*[^/\s]+)/-/merge_requests/(\d+)"
    COMMIT_URL_PATTERN = r"https?://([^/\s]+)/((?:[^/\s]+/)*[^/\s]+)/-/commit/([a-f0-9]+)"
    PROJECT_PATH_SEPARATOR = "/-/"
