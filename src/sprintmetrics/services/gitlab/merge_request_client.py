"""Merge request and commit lookups."""

from __future__ import annotations

import logging
from typing import Any

from sprintmetrics.services.gitlab.base import GitLabDomainClient
from sprintmetrics.shared.dates import to_iso, window_end, window_start
from sprintmetrics.shared.errors import (
    DomainError,
    ErrorCode,
    ErrorContext,
    ScopeNotFoundError,
)

logger = logging.getLogger(__name__)

GROUP_MERGE_REQUESTS_QUERY = """
query getGroupMergeRequests(
  $fullPath: ID!
  $first: Int!
  $after: String
  $mergedAfter: Time
  $mergedBefore: Time
) {
  group(fullPath: $fullPath) {
    id
    mergeRequests(
      state: merged
      first: $first
      after: $after
      mergedAfter: $mergedAfter
      mergedBefore: $mergedBefore
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
        mergedAt
        targetBranch
        sourceBranch
        webUrl
        author {
          username
          name
        }
        project {
          fullPath
          name
        }
        commits {
          nodes {
            id
            sha
            committedDate
          }
        }
      }
    }
  }
}
"""

MERGE_REQUEST_QUERY = """
query getMergeRequest($fullPath: ID!, $iid: String!) {
  project(fullPath: $fullPath) {
    mergeRequest(iid: $iid) {
      id
      iid
      title
      state
      mergedAt
      createdAt
      targetBranch
      sourceBranch
      webUrl
    }
  }
}
"""

COMMIT_QUERY = """
query getCommit($fullPath: ID!, $sha: String!) {
  project(fullPath: $fullPath) {
    repository {
      commit(ref: $sha) {
        id
        sha
        title
        message
        committedDate
        createdAt
        webUrl
      }
    }
  }
}
"""


class MergeRequestClient(GitLabDomainClient):
    """Reads merged merge requests of the group plus single MR/commit details."""

    async def fetch_merge_requests_for_group(
        self,
        start_date: str,
        end_date: str,
    ) -> list[dict[str, Any]]:
        """Return merge requests merged between ``start_date`` and ``end_date``.

        Raises:
            ScopeNotFoundError: If the group path does not resolve
            TransportError: On transport failure
        """

        def extract(data: dict[str, Any]) -> dict[str, Any] | None:
            group = data.get("group")
            if group is None:
                raise ScopeNotFoundError(
                    self.group_path,
                    ErrorContext(operation="fetch_merge_requests_for_group"),
                )
            return group.get("mergeRequests")

        merge_requests = await self._paginate(
            GROUP_MERGE_REQUESTS_QUERY,
            {
                "fullPath": self.group_path,
                "mergedAfter": to_iso(window_start(start_date)),
                "mergedBefore": to_iso(window_end(end_date)),
            },
            extract,
            "fetching merge requests",
        )
        logger.info(
            "Fetched %d merged merge requests between %s and %s",
            len(merge_requests),
            start_date,
            end_date,
        )
        return merge_requests

    async def fetch_merge_request_details(
        self,
        project_path: str,
        iid: str,
    ) -> dict[str, Any]:
        """Return one merge request.

        Raises:
            DomainError: If the merge request does not exist
            TransportError: On transport failure
        """
        data = await self._executor.execute(
            MERGE_REQUEST_QUERY,
            {"fullPath": project_path, "iid": str(iid)},
            f"fetching MR !{iid}",
        )
        merge_request = (data.get("project") or {}).get("mergeRequest")
        if merge_request is None:
            raise DomainError(
                ErrorCode.RESOURCE_NOT_FOUND,
                f"Merge request !{iid} not found in project {project_path}",
                ErrorContext(
                    operation="fetch_merge_request_details",
                    additional_data={"project_path": project_path, "iid": str(iid)},
                ),
            )
        return merge_request

    async def fetch_commit_details(self, project_path: str, sha: str) -> dict[str, Any]:
        """Return one commit.

        Raises:
            DomainError: If the commit does not exist
            TransportError: On transport failure
        """
        data = await self._executor.execute(
            COMMIT_QUERY,
            {"fullPath": project_path, "sha": sha},
            f"fetching commit {sha[:8]}",
        )
        repository = (data.get("project") or {}).get("repository") or {}
        commit = repository.get("commit")
        if commit is None:
            raise DomainError(
                ErrorCode.RESOURCE_NOT_FOUND,
                f"Commit {sha} not found in project {project_path}",
                ErrorContext(
                    operation="fetch_commit_details",
                    additional_data={"project_path": project_path, "sha": sha},
                ),
            )
        return commit


__all__ = ["MergeRequestClient"]
