"""Pipelines of the group's projects, used as deployment evidence.

Pipelines are enrichment data: every failure here degrades to an empty
list plus a warning instead of aborting the iteration fetch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sprintmetrics.services.gitlab.base import GitLabDomainClient
from sprintmetrics.services.gitlab.executor import GraphQLExecutor
from sprintmetrics.services.rate_limiter import RateLimitManager
from sprintmetrics.shared.constants import GitLabConfig, PaginationConfig
from sprintmetrics.shared.dates import to_iso, try_parse_timestamp, window_end, window_start
from sprintmetrics.shared.errors import SprintMetricsError

logger = logging.getLogger(__name__)

GROUP_PROJECTS_QUERY = """
query getGroupProjects($fullPath: ID!, $first: Int!, $after: String) {
  group(fullPath: $fullPath) {
    id
    name
    projects(first: $first, after: $after, includeSubgroups: true) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        fullPath
        name
      }
    }
  }
}
"""

PROJECT_PIPELINES_QUERY = """
query getPipelines(
  $fullPath: ID!
  $ref: String
  $first: Int!
  $after: String
  $updatedAfter: Time
) {
  project(fullPath: $fullPath) {
    pipelines(first: $first, ref: $ref, after: $after, updatedAfter: $updatedAfter) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        iid
        status
        ref
        createdAt
        updatedAt
        finishedAt
        sha
      }
    }
  }
}
"""


class _GroupMissing(Exception):
    pass


class PipelineClient(GitLabDomainClient):
    """Lists group projects and their pipelines on one ref."""

    def __init__(
        self,
        executor: GraphQLExecutor,
        rate_limiter: RateLimitManager,
        group_path: str,
        page_delay_ms: int = PaginationConfig.PIPELINE_PAGE_DELAY_MS,
        max_concurrent_requests: int = GitLabConfig.CONCURRENT_REQUESTS,
        project_page_delay_ms: int = PaginationConfig.PAGE_DELAY_MS,
    ) -> None:
        super().__init__(executor, rate_limiter, group_path, page_delay_ms)
        self.max_concurrent_requests = max_concurrent_requests
        self.project_page_delay_ms = project_page_delay_ms

    async def fetch_group_projects(self) -> list[dict[str, Any]]:
        """Return all projects of the group, or ``[]`` if that fails."""

        def extract(data: dict[str, Any]) -> dict[str, Any] | None:
            group = data.get("group")
            if group is None:
                raise _GroupMissing
            return group.get("projects")

        try:
            projects = await self._paginate(
                GROUP_PROJECTS_QUERY,
                {"fullPath": self.group_path},
                extract,
                "fetching group projects",
                delay_ms=self.project_page_delay_ms,
            )
        except _GroupMissing:
            logger.warning("Group not found: %s", self.group_path)
            return []
        except SprintMetricsError as e:
            logger.warning("Failed to fetch group projects: %s", e.message)
            return []

        logger.info("Found %d projects in group %s", len(projects), self.group_path)
        return projects

    async def fetch_pipelines_for_project(
        self,
        project_path: str,
        ref: str = GitLabConfig.DEFAULT_REF,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return pipelines of ``project_path`` on ``ref`` within the window.

        ``start_date`` filters server-side (updated after); ``end_date``
        filters client-side on ``createdAt``. Failures yield ``[]``.
        """
        variables: dict[str, Any] = {
            "fullPath": project_path,
            "ref": ref,
            "updatedAfter": to_iso(window_start(start_date)) if start_date else None,
        }

        def extract(data: dict[str, Any]) -> dict[str, Any] | None:
            return (data.get("project") or {}).get("pipelines")

        try:
            pipelines = await self._paginate(
                PROJECT_PIPELINES_QUERY,
                variables,
                extract,
                f"fetching pipelines for {project_path}",
            )
        except SprintMetricsError as e:
            logger.warning("Failed to fetch pipelines for %s: %s", project_path, e.message)
            return []

        if end_date:
            end = window_end(end_date)
            pipelines = [
                pipeline
                for pipeline in pipelines
                if (created := try_parse_timestamp(pipeline.get("createdAt"))) is not None
                and created <= end
            ]
        return pipelines

    async def fetch_pipelines_for_group(
        self,
        start_date: str,
        end_date: str,
        ref: str = GitLabConfig.DEFAULT_REF,
    ) -> list[dict[str, Any]]:
        """Pipelines of every group project, tagged with ``projectPath``."""
        projects = await self.fetch_group_projects()
        if not projects:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrent_requests)

        async def for_project(project_path: str) -> list[dict[str, Any]]:
            async with semaphore:
                pipelines = await self.fetch_pipelines_for_project(
                    project_path, ref, start_date, end_date
                )
            return [{**pipeline, "projectPath": project_path} for pipeline in pipelines]

        results = await asyncio.gather(
            *(
                for_project(project["fullPath"])
                for project in projects
                if project.get("fullPath")
            )
        )
        pipelines = [pipeline for batch in results for pipeline in batch]
        logger.info(
            "Fetched %d pipelines on %s across %d projects", len(pipelines), ref, len(projects)
        )
        return pipelines


__all__ = ["PipelineClient"]
