"""Iteration listing for a GitLab group."""

from __future__ import annotations

import logging
from typing import Any

from sprintmetrics.services.gitlab.base import GitLabDomainClient
from sprintmetrics.shared.errors import (
    ErrorContext,
    ScopeNotFoundError,
    create_config_error,
)
from sprintmetrics.shared.logging import log_operation_error

logger = logging.getLogger(__name__)

ITERATIONS_QUERY = """
query getIterations($fullPath: ID!, $first: Int!, $after: String) {
  group(fullPath: $fullPath) {
    id
    iterations(first: $first, after: $after, includeAncestors: false) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        iid
        title
        description
        state
        startDate
        dueDate
        createdAt
        updatedAt
        webUrl
        iterationCadence {
          id
          title
        }
      }
    }
  }
}
"""


class _GroupMissing(Exception):
    """The queried group path does not resolve."""


def candidate_group_paths(group_path: str) -> list[str]:
    """Successively shorter prefixes of a group path.

    >>> candidate_group_paths("a/b/c")
    ['a/b/c', 'a/b', 'a']
    """
    parts = [part for part in group_path.strip("/").split("/") if part]
    return ["/".join(parts[:end]) for end in range(len(parts), 0, -1)]


class IterationClient(GitLabDomainClient):
    """Lists the iterations of the configured group.

    Iterations usually live on a parent group while the configured path
    may point at a subgroup or project, so when a path does not resolve the
    client retries with each parent path in turn.
    """

    async def fetch_iterations(self) -> list[dict[str, Any]]:
        """Return every iteration of the first group path that resolves.

        A group without iterations yields an empty list.

        Raises:
            ScopeNotFoundError: If no prefix of the group path resolves
            TransportError: On transport failure
        """
        candidates = candidate_group_paths(self.group_path)
        if not candidates:
            raise create_config_error(
                message="GitLab group path is not configured",
                config_key="GITLAB_PROJECT_PATH",
                operation="fetch_iterations",
            )

        for group_path in candidates:
            try:
                return await self._fetch_for_group(group_path)
            except _GroupMissing:
                logger.warning("Group not found: %s", group_path)

        error = ScopeNotFoundError(
            candidates[-1],
            ErrorContext(
                operation="fetch_iterations",
                additional_data={
                    "configured_path": self.group_path,
                    "paths_tried": len(candidates),
                },
            ),
        )
        log_operation_error(logger=logger, error=error)
        raise error

    async def _fetch_for_group(self, group_path: str) -> list[dict[str, Any]]:
        def extract(data: dict[str, Any]) -> dict[str, Any] | None:
            group = data.get("group")
            if group is None:
                raise _GroupMissing(group_path)
            return group.get("iterations")

        iterations = await self._paginate(
            ITERATIONS_QUERY,
            {"fullPath": group_path},
            extract,
            "fetching iterations",
        )

        if not iterations:
            logger.warning(
                "No iterations found for group %s; is an iteration cadence configured?",
                group_path,
            )
        else:
            logger.info("Fetched %d iterations for group %s", len(iterations), group_path)
        return iterations


__all__ = ["IterationClient", "candidate_group_paths"]
