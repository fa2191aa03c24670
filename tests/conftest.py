"""
Pytest configuration and shared fixtures for SprintMetrics tests.

This module provides common fixtures used across the test modules: a
temporary cache directory, an iteration cache repository, a rate limiter
that never sleeps and sample GitLab nodes.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from sprintmetrics.services.cache import IterationCacheRepository
from sprintmetrics.services.rate_limiter import RateLimitManager

# Keep tests independent of a developer's .env / shell
for _name in (
    "GITLAB_TOKEN",
    "GITLAB_PROJECT_PATH",
    "GITLAB_URL",
    "CACHE_TTL_HOURS",
    "LOG_LEVEL",
    "LOG_FILE",
    "LOG_RICH_CONSOLE",
):
    os.environ.pop(_name, None)

ITERATION_ID = "gid://gitlab/Iteration/123"


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Directory for iteration cache files (not created yet)."""
    return tmp_path / "cache" / "iterations"


@pytest.fixture
def repository(cache_dir: Path) -> IterationCacheRepository:
    """Iteration cache repository with the default 6 hour TTL."""
    return IterationCacheRepository(cache_dir=cache_dir, ttl_hours=6)


@pytest.fixture
def rate_limiter() -> RateLimitManager:
    """Rate limiter whose delay is an AsyncMock, so tests never sleep."""
    limiter = RateLimitManager()
    limiter.delay = AsyncMock()  # type: ignore[method-assign]
    return limiter


@pytest.fixture
def executor() -> AsyncMock:
    """Stand-in for GraphQLExecutor; configure ``execute.side_effect`` per test."""
    mock = AsyncMock()
    mock.execute = AsyncMock()
    return mock


@pytest.fixture
def iteration_node() -> dict[str, Any]:
    return {
        "id": ITERATION_ID,
        "iid": "7",
        "title": "Sprint 42",
        "state": "closed",
        "startDate": "2025-01-01",
        "dueDate": "2025-01-14",
    }


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """Payload as stored by the provider (camelCase keys)."""
    return {
        "iterationId": ITERATION_ID,
        "metadata": {
            "id": ITERATION_ID,
            "title": "Sprint 42",
            "startDate": "2025-01-01",
            "dueDate": "2025-01-14",
        },
        "issues": [
            {
                "id": "gid://gitlab/Issue/1",
                "iid": "1",
                "state": "closed",
                "weight": 3,
                "createdAt": "2025-01-02T09:00:00Z",
                "closedAt": "2025-01-04T09:00:00Z",
                "inProgressAt": None,
            }
        ],
        "mergeRequests": [
            {
                "id": "gid://gitlab/MergeRequest/1",
                "state": "merged",
                "targetBranch": "main",
                "createdAt": "2025-01-02T09:00:00Z",
                "mergedAt": "2025-01-03T09:00:00Z",
            }
        ],
        "pipelines": [],
        "incidents": [],
        "fetchedAt": "2025-01-15T00:00:00+00:00",
    }


def build_connection(
    nodes: list[dict[str, Any]],
    *,
    has_next: bool = False,
    cursor: str | None = None,
) -> dict[str, Any]:
    """GraphQL connection shape with ``pageInfo`` and ``nodes``."""
    return {
        "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
        "nodes": nodes,
    }


@pytest.fixture
def connection():
    """Factory for GraphQL connection dicts."""
    return build_connection
