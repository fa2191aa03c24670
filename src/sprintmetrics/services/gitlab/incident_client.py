"""Incidents active during an iteration, with timeline enrichment."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any

from sprintmetrics.core.incidents import (
    enrich_incident,
    extract_project_path,
    is_active_during,
)
from sprintmetrics.services.gitlab.base import GitLabDomainClient
from sprintmetrics.services.gitlab.executor import GraphQLExecutor
from sprintmetrics.services.gitlab.merge_request_client import MergeRequestClient
from sprintmetrics.services.rate_limiter import RateLimitManager
from sprintmetrics.shared.constants import GitLabConfig, IncidentConfig, PaginationConfig
from sprintmetrics.shared.dates import to_iso, window_end, window_start
from sprintmetrics.shared.errors import ErrorContext, ScopeNotFoundError, SprintMetricsError

logger = logging.getLogger(__name__)

INCIDENTS_QUERY = """
query getIncidents(
  $fullPath: ID!
  $first: Int!
  $after: String
  $createdAfter: Time
  $createdBefore: Time
) {
  group(fullPath: $fullPath) {
    id
    issues(
      types: [INCIDENT]
      includeSubgroups: true
      createdAfter: $createdAfter
      createdBefore: $createdBefore
      first: $first
      after: $after
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
        webUrl
        labels {
          nodes {
            title
          }
        }
      }
    }
  }
}
"""

TIMELINE_EVENTS_QUERY = """
query getIncidentTimelineEvents($fullPath: ID!, $incidentId: IssueID!) {
  project(fullPath: $fullPath) {
    incidentManagementTimelineEvents(incidentId: $incidentId) {
      nodes {
        id
        occurredAt
        createdAt
        note
        action
        timelineEventTags {
          nodes {
            name
          }
        }
        author {
          username
          name
        }
      }
    }
  }
}
"""


class IncidentClient(GitLabDomainClient):
    """Fetches incidents relevant to an iteration window.

    Incidents opened up to ``IncidentConfig.LOOKBACK_DAYS`` before the
    window are considered, since an incident can be created well before the
    outage it documents. Timeline events and change dates are best effort:
    failures are logged and leave the incident without them.
    """

    def __init__(
        self,
        executor: GraphQLExecutor,
        rate_limiter: RateLimitManager,
        group_path: str,
        merge_request_client: MergeRequestClient,
        page_delay_ms: int = PaginationConfig.PAGE_DELAY_MS,
        max_concurrent_requests: int = GitLabConfig.CONCURRENT_REQUESTS,
    ) -> None:
        super().__init__(executor, rate_limiter, group_path, page_delay_ms)
        self._merge_requests = merge_request_client
        self.max_concurrent_requests = max_concurrent_requests

    async def fetch_incidents(self, start_date: str, end_date: str) -> list[dict[str, Any]]:
        """Return enriched incidents with activity inside the window.

        Raises:
            ScopeNotFoundError: If the group path does not resolve
            TransportError: If the incident list cannot be read
        """
        window_from = window_start(start_date)
        window_to = window_end(end_date)
        fetch_from = window_from - timedelta(days=IncidentConfig.LOOKBACK_DAYS)

        def extract(data: dict[str, Any]) -> dict[str, Any] | None:
            group = data.get("group")
            if group is None:
                raise ScopeNotFoundError(
                    self.group_path,
                    ErrorContext(operation="fetch_incidents"),
                )
            return group.get("issues")

        incidents = await self._paginate(
            INCIDENTS_QUERY,
            {
                "fullPath": self.group_path,
                "createdAfter": to_iso(fetch_from),
                "createdBefore": to_iso(window_to),
            },
            extract,
            "fetching incidents",
        )
        logger.debug(
            "Fetched %d incidents created since %s",
            len(incidents),
            fetch_from.date().isoformat(),
        )

        semaphore = asyncio.Semaphore(self.max_concurrent_requests)

        async def with_timeline(incident: dict[str, Any]) -> dict[str, Any] | None:
            async with semaphore:
                events = await self.fetch_timeline_events(incident)
            if not is_active_during(incident, events, window_from, window_to):
                return None
            enriched = enrich_incident(incident, events)
            if enriched["changeLink"] is not None:
                async with semaphore:
                    enriched["changeDate"] = await self._fetch_change_date(enriched)
            return enriched

        results = await asyncio.gather(*(with_timeline(incident) for incident in incidents))
        relevant = [incident for incident in results if incident is not None]
        logger.info(
            "Found %d incidents with activity between %s and %s",
            len(relevant),
            start_date,
            end_date,
        )
        return relevant

    async def fetch_timeline_events(self, incident: dict[str, Any]) -> list[dict[str, Any]]:
        """Timeline events of one incident, ``[]`` when unavailable."""
        project_path = extract_project_path(incident.get("webUrl"))
        if project_path is None:
            logger.warning(
                "Could not extract project path from incident URL: %s",
                incident.get("webUrl"),
            )
            return []

        try:
            data = await self._executor.execute(
                TIMELINE_EVENTS_QUERY,
                {"fullPath": project_path, "incidentId": incident["id"]},
                "fetching incident timeline",
            )
        except SprintMetricsError as e:
            logger.warning(
                "Could not fetch timeline events for incident %s: %s",
                incident.get("iid"),
                e.message,
            )
            return []

        connection = (data.get("project") or {}).get("incidentManagementTimelineEvents")
        if not connection:
            return []
        return list(connection.get("nodes") or [])

    async def _fetch_change_date(self, incident: dict[str, Any]) -> str | None:
        link = incident["changeLink"]
        try:
            if link["type"] == "merge_request":
                details = await self._merge_requests.fetch_merge_request_details(
                    link["project"], link["id"]
                )
                return details.get("mergedAt")
            details = await self._merge_requests.fetch_commit_details(
                link["project"], link["sha"]
            )
            return details.get("committedDate")
        except SprintMetricsError as e:
            logger.warning(
                "Could not fetch change date for incident %s: %s",
                incident.get("iid"),
                e.message,
            )
            return None


__all__ = ["IncidentClient"]
