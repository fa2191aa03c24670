"""Iteration cache package."""

from sprintmetrics.services.cache.iteration_cache import IterationCacheRepository
from sprintmetrics.services.cache.models import (
    CacheEntry,
    CacheMetadata,
    IterationMetadata,
    IterationPayload,
)

__all__ = [
    "CacheEntry",
    "CacheMetadata",
    "IterationCacheRepository",
    "IterationMetadata",
    "IterationPayload",
]
