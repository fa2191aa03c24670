"""Cached iteration data provider.

Single entry point for iteration data. Callers never learn whether a payload
came from the file cache or from GitLab: a hit makes no network call at all,
a miss fans out to the domain clients, writes the assembled payload through
the repository and returns it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from pydantic import ValidationError

from sprintmetrics.config import (
    Settings,
    configure_logging,
    get_config,
    require_gitlab_credentials,
)
from sprintmetrics.services.cache import (
    IterationCacheRepository,
    IterationMetadata,
    IterationPayload,
)
from sprintmetrics.services.gitlab import (
    GraphQLExecutor,
    IncidentClient,
    IssueClient,
    IterationClient,
    MergeRequestClient,
    PipelineClient,
)
from sprintmetrics.services.rate_limiter import RateLimitManager
from sprintmetrics.shared.constants import CacheConfig, GitLabConfig
from sprintmetrics.shared.dates import to_iso, utc_now
from sprintmetrics.shared.errors import (
    CacheCorruptionError,
    ErrorContext,
    IterationNotFoundError,
    create_validation_error,
)
from sprintmetrics.shared.logging import (
    log_operation_error,
    log_operation_start,
    log_operation_success,
)

logger = logging.getLogger(__name__)


class CachedIterationDataProvider:
    """Read-through cache in front of the GitLab domain clients.

    Concurrent requests for the same iteration share one in-flight task, so
    N simultaneous misses cost one GitLab fetch. The iteration list, needed
    to resolve an iteration's date window, is kept in memory for
    ``iteration_list_ttl`` seconds.

    Args:
        repository: File cache for assembled payloads
        iteration_client: Lists the group's iterations
        issue_client: Issues of one iteration
        merge_request_client: Merged MRs of a date window
        pipeline_client: Pipelines of a date window (enrichment)
        incident_client: Incidents of a date window
        pipeline_ref: Branch whose pipelines are collected
        iteration_list_ttl: Seconds the iteration list is reused
        executor: Executor to close together with the provider, if any
    """

    def __init__(
        self,
        repository: IterationCacheRepository,
        iteration_client: IterationClient,
        issue_client: IssueClient,
        merge_request_client: MergeRequestClient,
        pipeline_client: PipelineClient,
        incident_client: IncidentClient,
        *,
        pipeline_ref: str = GitLabConfig.DEFAULT_REF,
        iteration_list_ttl: float = CacheConfig.ITERATION_LIST_TTL,
        executor: GraphQLExecutor | None = None,
    ) -> None:
        self.repository = repository
        self._iterations_client = iteration_client
        self._issues = issue_client
        self._merge_requests = merge_request_client
        self._pipelines = pipeline_client
        self._incidents = incident_client
        self.pipeline_ref = pipeline_ref
        self.iteration_list_ttl = iteration_list_ttl
        self._executor = executor

        self._in_flight: dict[str, asyncio.Task[IterationPayload]] = {}
        self._iterations: list[dict[str, Any]] | None = None
        self._iterations_loaded_at = 0.0
        self._iterations_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        repository: IterationCacheRepository | None = None,
    ) -> CachedIterationDataProvider:
        """Wire executor, rate limiter and domain clients from settings.

        Without explicit settings the process-wide configuration is loaded
        and its LOG_* values are applied to the package logger.

        Raises:
            ApplicationError: If the GitLab token or group path is missing
        """
        if settings is None:
            settings = get_config()
            configure_logging(settings.logging)
        require_gitlab_credentials(settings)
        gitlab = settings.gitlab

        rate_limiter = RateLimitManager()
        executor = GraphQLExecutor(gitlab, rate_limiter)
        group_path = gitlab.project_path
        merge_request_client = MergeRequestClient(
            executor, rate_limiter, group_path, gitlab.page_delay_ms
        )

        return cls(
            repository
            or IterationCacheRepository(settings.cache.dir, settings.cache.ttl_hours),
            IterationClient(executor, rate_limiter, group_path, gitlab.page_delay_ms),
            IssueClient(
                executor,
                rate_limiter,
                group_path,
                gitlab.page_delay_ms,
                gitlab.concurrent_requests,
            ),
            merge_request_client,
            PipelineClient(
                executor,
                rate_limiter,
                group_path,
                gitlab.pipeline_page_delay_ms,
                gitlab.concurrent_requests,
                gitlab.page_delay_ms,
            ),
            IncidentClient(
                executor,
                rate_limiter,
                group_path,
                merge_request_client,
                gitlab.page_delay_ms,
                gitlab.concurrent_requests,
            ),
            pipeline_ref=gitlab.pipeline_ref,
            executor=executor,
        )

    async def __aenter__(self) -> CachedIterationDataProvider:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._executor is not None:
            await self._executor.close()

    async def list_iterations(self) -> list[dict[str, Any]]:
        """Return the group's iterations, reusing a recent listing.

        Raises:
            ScopeNotFoundError: If the group path does not resolve
            TransportError: On transport failure
        """
        async with self._iterations_lock:
            now = time.monotonic()
            if (
                self._iterations is None
                or now - self._iterations_loaded_at > self.iteration_list_ttl
            ):
                self._iterations = await self._iterations_client.fetch_iterations()
                self._iterations_loaded_at = now
            return self._iterations

    async def fetch_iteration_with_cache(self, iteration_id: str) -> IterationPayload:
        """Return the payload of one iteration, from disk when possible.

        Raises:
            IterationNotFoundError: If the id is not one of the group's iterations
            ScopeNotFoundError: If the group path does not resolve
            CacheCorruptionError: If the cache file for the id is corrupted
            PathTraversalError: If the id escapes the cache directory
            TransportError: On transport failure
        """
        if not iteration_id:
            raise create_validation_error(
                message="Iteration id must be a non-empty string",
                field="iteration_id",
                operation="fetch_iteration_with_cache",
            )

        task = self._in_flight.get(iteration_id)
        if task is None:
            task = asyncio.create_task(self._get_or_load(iteration_id))
            self._in_flight[iteration_id] = task
            task.add_done_callback(
                lambda done: self._on_load_done(iteration_id, done)
            )
        else:
            logger.debug("Joining in-flight fetch for iteration %s", iteration_id)
        return await asyncio.shield(task)

    async def fetch_multiple_iterations(
        self,
        iteration_ids: list[str],
    ) -> list[IterationPayload]:
        """Fetch several iterations concurrently, preserving input order.

        Raises:
            DomainError: If ``iteration_ids`` is empty
        """
        if not iteration_ids:
            raise create_validation_error(
                message="At least one iteration id is required",
                field="iteration_ids",
                operation="fetch_multiple_iterations",
            )
        return list(
            await asyncio.gather(
                *(self.fetch_iteration_with_cache(iteration_id) for iteration_id in iteration_ids)
            )
        )

    def _on_load_done(self, iteration_id: str, task: asyncio.Task) -> None:
        self._in_flight.pop(iteration_id, None)
        # Mark the failure as retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _get_or_load(self, iteration_id: str) -> IterationPayload:
        cached = await self.repository.get(iteration_id)
        if cached is not None:
            logger.debug("Serving iteration %s from cache", iteration_id)
            try:
                return IterationPayload.model_validate(cached)
            except ValidationError as e:
                error = CacheCorruptionError(
                    iteration_id,
                    f"invalid payload structure ({e.error_count()} error(s))",
                    ErrorContext(operation="fetch_iteration"),
                    e,
                )
                log_operation_error(logger=logger, error=error)
                raise error from e
        return await self._load(iteration_id)

    async def _load(self, iteration_id: str) -> IterationPayload:
        start = time.perf_counter()
        log_operation_start(
            logger=logger,
            operation="fetch_iteration",
            context={"iteration_id": iteration_id},
        )

        iteration = await self._find_iteration(iteration_id)
        start_date = iteration.get("startDate")
        due_date = iteration.get("dueDate")
        if not start_date or not due_date:
            raise create_validation_error(
                message=f"Iteration {iteration_id} has no start or due date",
                field="startDate" if not start_date else "dueDate",
                operation="fetch_iteration",
            )

        issues, merge_requests, pipelines, incidents = await asyncio.gather(
            self._issues.fetch_issues_for_iteration(iteration_id),
            self._merge_requests.fetch_merge_requests_for_group(start_date, due_date),
            self._pipelines.fetch_pipelines_for_group(start_date, due_date, self.pipeline_ref),
            self._incidents.fetch_incidents(start_date, due_date),
        )

        payload = IterationPayload(
            iteration_id=iteration_id,
            metadata=IterationMetadata(
                id=iteration["id"],
                title=iteration.get("title"),
                start_date=start_date,
                due_date=due_date,
            ),
            issues=issues,
            merge_requests=merge_requests,
            pipelines=pipelines,
            incidents=incidents,
            fetched_at=to_iso(utc_now()),
        )

        try:
            await self.repository.set(iteration_id, payload.to_json_dict())
        except OSError as e:
            logger.warning("Could not write cache for iteration %s: %s", iteration_id, e)

        log_operation_success(
            logger=logger,
            operation="fetch_iteration",
            duration_ms=(time.perf_counter() - start) * 1000,
            result_info={
                "issues": len(issues),
                "merge_requests": len(merge_requests),
                "pipelines": len(pipelines),
                "incidents": len(incidents),
            },
            context={"iteration_id": iteration_id},
        )
        return payload

    async def _find_iteration(self, iteration_id: str) -> dict[str, Any]:
        for iteration in await self.list_iterations():
            if iteration.get("id") == iteration_id:
                return iteration

        error = IterationNotFoundError(
            iteration_id,
            ErrorContext(operation="fetch_iteration"),
        )
        log_operation_error(logger=logger, error=error)
        raise error


__all__ = ["CachedIterationDataProvider"]
