"""Pydantic models for cached iteration data.

Field names are snake_case in Python and camelCase on disk, matching the
shape GitLab returns and the dashboard consumes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CacheEntry(CamelModel):
    """On-disk unit of the iteration cache.

    ``last_fetched`` stays a string so that an unparsable timestamp is
    treated as an expired entry rather than a corrupted one.

    Example:
        {
          "version": "1.0",
          "iterationId": "gid://gitlab/Iteration/123",
          "lastFetched": "2025-01-01T00:00:00+00:00",
          "data": {...}
        }
    """

    version: str
    iteration_id: str
    last_fetched: str
    data: dict[str, Any]


class CacheMetadata(CamelModel):
    """Summary of one cache file, used for cache status reporting."""

    iteration_id: str
    last_fetched: str
    file_size: int = Field(ge=0)


class IterationMetadata(CamelModel):
    """Identity and date window of an iteration."""

    id: str
    title: str | None = None
    start_date: str | None = None
    due_date: str | None = None


class IterationPayload(CamelModel):
    """Everything fetched for one iteration.

    Collections hold raw GitLab nodes. Issues additionally carry
    ``inProgressAt`` and incidents carry timeline enrichment fields.
    """

    iteration_id: str
    metadata: IterationMetadata
    issues: list[dict[str, Any]] = Field(default_factory=list)
    merge_requests: list[dict[str, Any]] = Field(default_factory=list)
    pipelines: list[dict[str, Any]] = Field(default_factory=list)
    incidents: list[dict[str, Any]] = Field(default_factory=list)
    fetched_at: str


__all__ = [
    "CacheEntry",
    "CacheMetadata",
    "CamelModel",
    "IterationMetadata",
    "IterationPayload",
]
