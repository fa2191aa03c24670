"""Cache status reporting and the full cache reset."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sprintmetrics.services.cache import CacheMetadata, IterationCacheRepository
from sprintmetrics.services.metrics_store import FileMetricsRepository
from sprintmetrics.shared.constants import CacheStatusConfig
from sprintmetrics.shared.dates import hours_between, try_parse_timestamp, utc_now

logger = logging.getLogger(__name__)


def classify_age(age_hours: float, ttl_hours: float) -> str:
    """``fresh`` under an hour, ``aging`` within the TTL, ``stale`` after it.

    A TTL of ``0`` never expires, so such entries never become stale.
    """
    if age_hours < CacheStatusConfig.FRESH_HOURS:
        return CacheStatusConfig.STATUS_FRESH
    if ttl_hours == 0 or age_hours < ttl_hours:
        return CacheStatusConfig.STATUS_AGING
    return CacheStatusConfig.STATUS_STALE


def _iteration_status(
    metadata: CacheMetadata,
    ttl_hours: float,
    now: datetime,
) -> dict[str, Any]:
    fetched_at = try_parse_timestamp(metadata.last_fetched)
    if fetched_at is None:
        age_hours = float("inf")
    else:
        age_hours = hours_between(fetched_at, now)

    return {
        "iterationId": metadata.iteration_id,
        "lastFetched": metadata.last_fetched,
        "ageHours": round(age_hours, 2) if fetched_at is not None else None,
        "status": classify_age(age_hours, ttl_hours),
        "fileSize": metadata.file_size,
    }


async def get_cache_status(repository: IterationCacheRepository) -> dict[str, Any]:
    """Summarize every cached iteration.

    Returns:
        ``{cacheTTL, totalCachedIterations, globalLastUpdated, iterations}``
        where ``globalLastUpdated`` is the most recent ``lastFetched`` or
        ``None`` for an empty cache.
    """
    metadata = await repository.get_all_metadata()
    now = utc_now()
    iterations = [_iteration_status(item, repository.ttl_hours, now) for item in metadata]

    global_last_updated = None
    latest = None
    for item in metadata:
        fetched_at = try_parse_timestamp(item.last_fetched)
        if fetched_at is not None and (latest is None or fetched_at > latest):
            latest = fetched_at
            global_last_updated = item.last_fetched

    return {
        "cacheTTL": repository.ttl_hours,
        "totalCachedIterations": len(iterations),
        "globalLastUpdated": global_last_updated,
        "iterations": iterations,
    }


async def clear_all_cached_data(
    repository: IterationCacheRepository,
    metrics_repository: FileMetricsRepository,
) -> dict[str, int]:
    """Drop every cached iteration and every stored metric."""
    cleared_iterations = await repository.clear_all()
    deleted_metrics = await metrics_repository.delete_all()
    logger.info(
        "Cache reset: %d iterations cleared, %d metrics deleted",
        cleared_iterations,
        deleted_metrics,
    )
    return {"iterations": cleared_iterations, "metrics": deleted_metrics}


__all__ = ["classify_age", "clear_all_cached_data", "get_cache_status"]
