"""Metric calculation use cases.

The service does not know whether iteration data comes from the file cache
or from GitLab; it only asks the provider for payloads.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from sprintmetrics.core.metrics import Metric, build_metric
from sprintmetrics.shared.errors import SprintMetricsError
from sprintmetrics.shared.logging import log_operation_error, log_operation_success

if TYPE_CHECKING:
    from sprintmetrics.services.metrics_store import FileMetricsRepository
    from sprintmetrics.services.provider import CachedIterationDataProvider

logger = logging.getLogger(__name__)


class MetricsService:
    """Computes and persists metrics for iterations.

    Args:
        provider: Source of iteration payloads
        metrics_repository: Store the computed metrics are saved to
    """

    def __init__(
        self,
        provider: CachedIterationDataProvider,
        metrics_repository: FileMetricsRepository,
    ) -> None:
        self._provider = provider
        self._metrics = metrics_repository

    async def calculate_metrics(self, iteration_id: str) -> Metric:
        """Compute, save and return the metrics of one iteration."""
        start = time.perf_counter()
        try:
            payload = await self._provider.fetch_iteration_with_cache(iteration_id)
            metric = build_metric(payload)
        except SprintMetricsError as e:
            log_operation_error(
                logger=logger,
                error=e,
                operation="calculate_metrics",
                additional_context={"iteration_id": iteration_id},
            )
            raise

        await self._metrics.save(metric)
        log_operation_success(
            logger=logger,
            operation="calculate_metrics",
            duration_ms=(time.perf_counter() - start) * 1000,
            context={"iteration_id": iteration_id},
        )
        return metric

    async def calculate_multiple_metrics(self, iteration_ids: list[str]) -> list[Metric]:
        """Compute metrics for several iterations, in input order.

        Payloads are fetched concurrently; metrics are saved one at a time.
        """
        start = time.perf_counter()
        try:
            payloads = await self._provider.fetch_multiple_iterations(iteration_ids)
            metrics = [build_metric(payload) for payload in payloads]
        except SprintMetricsError as e:
            log_operation_error(
                logger=logger,
                error=e,
                operation="calculate_multiple_metrics",
                additional_context={"iteration_count": len(iteration_ids)},
            )
            raise

        for metric in metrics:
            await self._metrics.save(metric)

        log_operation_success(
            logger=logger,
            operation="calculate_multiple_metrics",
            duration_ms=(time.perf_counter() - start) * 1000,
            result_info={"metrics": len(metrics)},
        )
        return metrics


__all__ = ["MetricsService"]
