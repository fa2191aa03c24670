"""Issues of an iteration, enriched with the time work started."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sprintmetrics.services.gitlab.base import GitLabDomainClient
from sprintmetrics.services.gitlab.executor import GraphQLExecutor
from sprintmetrics.services.gitlab.status_changes import extract_in_progress_timestamp
from sprintmetrics.services.rate_limiter import RateLimitManager
from sprintmetrics.shared.constants import GitLabConfig, PaginationConfig
from sprintmetrics.shared.errors import (
    DomainError,
    ErrorCode,
    ErrorContext,
    ScopeNotFoundError,
    SprintMetricsError,
)

logger = logging.getLogger(__name__)

NOTE_FIELDS = """
          pageInfo {
            hasNextPage
            endCursor
          }
          nodes {
            id
            body
            system
            systemNoteMetadata {
              action
            }
            createdAt
          }
"""

ITERATION_ISSUES_QUERY = (
    """
query getIterationIssues(
  $fullPath: ID!
  $iterationId: [ID]
  $first: Int!
  $after: String
  $notesFirst: Int!
  $not: NegatedIssueFilterInput
) {
  group(fullPath: $fullPath) {
    id
    issues(
      iterationId: $iterationId
      includeSubgroups: true
      first: $first
      after: $after
      not: $not
    ) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        iid
        title
        state
        createdAt
        closedAt
        updatedAt
        weight
        webUrl
        labels {
          nodes {
            title
          }
        }
        assignees {
          nodes {
            username
          }
        }
        notes(first: $notesFirst) {"""
    + NOTE_FIELDS
    + """        }
      }
    }
  }
}
"""
)

ISSUE_NOTES_QUERY = (
    """
query getIssueNotes($issueId: IssueID!, $first: Int!, $after: String) {
  issue(id: $issueId) {
    id
    notes(first: $first, after: $after) {"""
    + NOTE_FIELDS
    + """    }
  }
}
"""
)


class IssueClient(GitLabDomainClient):
    """Fetches the non-incident issues assigned to an iteration.

    Each issue gains an ``inProgressAt`` field: the time its work item
    status first moved to an in-progress state, or ``None``. Only the first
    page of notes is fetched with the issue; further pages are read only
    when that first page holds no in-progress transition.
    """

    def __init__(
        self,
        executor: GraphQLExecutor,
        rate_limiter: RateLimitManager,
        group_path: str,
        page_delay_ms: int = PaginationConfig.PAGE_DELAY_MS,
        max_concurrent_requests: int = GitLabConfig.CONCURRENT_REQUESTS,
    ) -> None:
        super().__init__(executor, rate_limiter, group_path, page_delay_ms)
        self.max_concurrent_requests = max_concurrent_requests

    async def fetch_issues_for_iteration(self, iteration_id: str) -> list[dict[str, Any]]:
        """Return every issue in the iteration, incidents excluded.

        Raises:
            ScopeNotFoundError: If the group path does not resolve
            TransportError: On transport failure
        """

        def extract(data: dict[str, Any]) -> dict[str, Any] | None:
            group = data.get("group")
            if group is None:
                raise ScopeNotFoundError(
                    self.group_path,
                    ErrorContext(operation="fetch_issues_for_iteration"),
                )
            return group.get("issues")

        issues = await self._paginate(
            ITERATION_ISSUES_QUERY,
            {
                "fullPath": self.group_path,
                "iterationId": [iteration_id],
                "notesFirst": PaginationConfig.ISSUE_NOTES_PAGE_SIZE,
                "not": {"types": ["INCIDENT"]},
            },
            extract,
            "fetching iteration issues",
        )
        logger.info("Fetched %d issues for iteration %s", len(issues), iteration_id)

        semaphore = asyncio.Semaphore(self.max_concurrent_requests)
        return list(
            await asyncio.gather(*(self._enrich_issue(issue, semaphore) for issue in issues))
        )

    async def _enrich_issue(
        self,
        issue: dict[str, Any],
        semaphore: asyncio.Semaphore,
    ) -> dict[str, Any]:
        notes_connection = issue.get("notes") or {}
        notes = list(notes_connection.get("nodes") or [])
        in_progress_at = extract_in_progress_timestamp(notes)

        page_info = notes_connection.get("pageInfo") or {}
        cursor = page_info.get("endCursor")
        if in_progress_at is None and page_info.get("hasNextPage") and cursor:
            try:
                async with semaphore:
                    more_notes = await self.fetch_additional_notes(issue["id"], cursor)
            except SprintMetricsError as e:
                logger.warning(
                    "Could not fetch remaining notes for issue %s: %s",
                    issue.get("iid"),
                    e.message,
                )
            else:
                in_progress_at = extract_in_progress_timestamp(notes + more_notes)

        return {**issue, "inProgressAt": in_progress_at}

    async def fetch_additional_notes(
        self,
        issue_id: str,
        start_cursor: str | None,
    ) -> list[dict[str, Any]]:
        """Read the notes of an issue that follow ``start_cursor``.

        Raises:
            DomainError: If the issue does not exist (ISSUE_NOT_FOUND)
            TransportError: On transport failure
        """

        def extract(data: dict[str, Any]) -> dict[str, Any] | None:
            issue = data.get("issue")
            if issue is None:
                raise DomainError(
                    ErrorCode.ISSUE_NOT_FOUND,
                    f"Issue not found: {issue_id}",
                    ErrorContext(
                        operation="fetch_additional_notes",
                        additional_data={"issue_id": issue_id},
                    ),
                )
            return issue.get("notes")

        notes = await self._paginate(
            ISSUE_NOTES_QUERY,
            {"issueId": issue_id},
            extract,
            "fetching issue notes",
            page_size=PaginationConfig.ADDITIONAL_NOTES_PAGE_SIZE,
            start_cursor=start_cursor,
        )
        logger.debug("Fetched %d additional notes for issue %s", len(notes), issue_id)
        return notes


__all__ = ["IssueClient"]
