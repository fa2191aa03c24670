"""File-backed iteration cache.

One pretty-printed JSON file per iteration id, stamped with the time it was
written. Entries older than the configured TTL read as misses; there is no
background sweep. Writes go to a temp file in the cache directory and are
moved into place with ``os.replace`` so readers never observe a partial file.

File I/O runs in a worker thread so callers on the event loop are never
blocked by the disk.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import tempfile
import time
from datetime import timedelta
from pathlib import Path
from typing import Any

import orjson
from pydantic import ValidationError

from sprintmetrics.services.cache.models import CacheEntry, CacheMetadata
from sprintmetrics.shared.constants import CacheConfig
from sprintmetrics.shared.dates import parse_timestamp, to_iso, utc_now
from sprintmetrics.shared.errors import (
    CacheCorruptionError,
    ErrorContext,
    PathTraversalError,
    create_config_error,
    create_validation_error,
)
from sprintmetrics.shared.logging import log_operation_error, log_operation_success

logger = logging.getLogger(__name__)

_UNSAFE_KEY_RE = re.compile(CacheConfig.UNSAFE_KEY_PATTERN)


def sanitize_key(key: str) -> str:
    """Map an opaque iteration id to a safe file stem.

    >>> sanitize_key("gid://gitlab/Iteration/123")
    'gid---gitlab-Iteration-123'
    """
    return _UNSAFE_KEY_RE.sub(CacheConfig.KEY_REPLACEMENT, key)


class IterationCacheRepository:
    """TTL-aware JSON file cache keyed by iteration id.

    Args:
        cache_dir: Directory for cache files. Resolved now, created on first write.
        ttl_hours: Entry lifetime in hours. ``0`` disables expiry.

    Raises:
        ApplicationError: If ttl_hours is negative
    """

    def __init__(
        self,
        cache_dir: str | Path = CacheConfig.DEFAULT_DIR,
        ttl_hours: float = CacheConfig.DEFAULT_TTL_HOURS,
    ) -> None:
        if ttl_hours < 0:
            raise create_config_error(
                message=f"Cache TTL must be non-negative, got: {ttl_hours}",
                config_key="ttl_hours",
                operation="cache_init",
            )
        self.cache_dir = Path(cache_dir).resolve()
        self.ttl_hours = ttl_hours

    # ------------------------------------------------------------------
    # Public async API
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the cached payload for ``key`` or ``None`` on a miss.

        A miss is a missing file, an expired entry, an entry with an
        unreadable timestamp (only while a TTL is active) or an entry written
        under a different schema version.

        Raises:
            CacheCorruptionError: If the file exists but is not a cache entry
            PathTraversalError: If the key escapes the cache directory
            OSError: On any other file system failure
        """
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, payload: dict[str, Any]) -> None:
        """Write ``payload`` under ``key`` with a fresh timestamp."""
        await asyncio.to_thread(self._set_sync, key, payload)

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def clear(self, key: str) -> None:
        """Delete one entry. A missing entry is not an error."""
        await asyncio.to_thread(self._clear_sync, key)

    async def clear_all(self) -> int:
        """Delete every entry and return how many files were removed."""
        return await asyncio.to_thread(self._clear_all_sync)

    async def get_all_metadata(self) -> list[CacheMetadata]:
        """Describe every readable entry, ignoring TTL.

        Unreadable or corrupted files are skipped with a warning.
        """
        return await asyncio.to_thread(self._get_all_metadata_sync)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def file_path(self, key: str) -> Path:
        """Resolve the cache file for ``key``, guarding against traversal.

        Raises:
            DomainError: If key is empty
            PathTraversalError: If the resolved path leaves the cache directory
        """
        if not key:
            raise create_validation_error(
                message="Cache key must be a non-empty string",
                field="key",
                operation="cache_file_path",
            )

        candidate = (
            self.cache_dir / f"{sanitize_key(key)}{CacheConfig.FILE_SUFFIX}"
        ).resolve()
        if candidate.parent != self.cache_dir or not candidate.is_relative_to(
            self.cache_dir
        ):
            error = PathTraversalError(
                key,
                ErrorContext(
                    operation="cache_file_path",
                    additional_data={"cache_dir": str(self.cache_dir)},
                ),
            )
            log_operation_error(logger=logger, error=error)
            raise error
        return candidate

    # ------------------------------------------------------------------
    # Synchronous implementation (runs in a worker thread)
    # ------------------------------------------------------------------

    def _is_expired(self, last_fetched: str, key: str) -> bool:
        if self.ttl_hours == 0:
            return False

        try:
            fetched_at = parse_timestamp(last_fetched)
        except ValueError:
            logger.warning(
                "Invalid lastFetched timestamp for iteration '%s', treating as expired",
                key,
            )
            return True

        age = utc_now() - fetched_at
        return age > timedelta(hours=self.ttl_hours)

    def _load_entry(self, key: str, path: Path, raw: bytes) -> CacheEntry | None:
        """Decode raw file content; ``None`` means a schema version mismatch."""
        context = ErrorContext(
            operation="cache_get",
            file_path=str(path),
            additional_data={"key": key},
        )
        try:
            decoded = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            error = CacheCorruptionError(key, str(e), context, e)
            log_operation_error(logger=logger, error=error)
            raise error from e

        if isinstance(decoded, dict) and "version" in decoded:
            version = decoded["version"]
            if version != CacheConfig.SCHEMA_VERSION:
                logger.warning(
                    "Cache entry for iteration '%s' has schema version %r (expected %r), treating as miss",
                    key,
                    version,
                    CacheConfig.SCHEMA_VERSION,
                )
                return None

        try:
            return CacheEntry.model_validate(decoded)
        except ValidationError as e:
            error = CacheCorruptionError(
                key,
                f"invalid entry structure ({e.error_count()} error(s))",
                context,
                e,
            )
            log_operation_error(logger=logger, error=error)
            raise error from e

    def _get_sync(self, key: str) -> dict[str, Any] | None:
        path = self.file_path(key)

        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.debug("Cache miss for iteration '%s'", key)
            return None

        entry = self._load_entry(key, path, raw)
        if entry is None:
            return None

        if entry.iteration_id != key:
            logger.warning(
                "Cache file for '%s' belongs to iteration '%s', treating as miss",
                key,
                entry.iteration_id,
            )
            return None

        if self._is_expired(entry.last_fetched, key):
            logger.debug("Cache entry expired for iteration '%s'", key)
            return None

        logger.debug("Cache hit for iteration '%s'", key)
        return entry.data

    def _set_sync(self, key: str, payload: dict[str, Any]) -> None:
        start = time.perf_counter()
        path = self.file_path(key)

        entry = CacheEntry(
            version=CacheConfig.SCHEMA_VERSION,
            iteration_id=key,
            last_fetched=to_iso(utc_now()),
            data=payload,
        )
        serialized = orjson.dumps(entry.to_json_dict(), option=orjson.OPT_INDENT_2)

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.cache_dir,
            prefix=f"{path.stem}.",
            suffix=CacheConfig.TEMP_SUFFIX,
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(serialized)
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

        log_operation_success(
            logger=logger,
            operation="cache_set",
            duration_ms=(time.perf_counter() - start) * 1000,
            result_info={"bytes": len(serialized)},
            context={"key": key},
        )

    def _clear_sync(self, key: str) -> None:
        path = self.file_path(key)
        path.unlink(missing_ok=True)
        logger.debug("Cleared cache entry for iteration '%s'", key)

    def _clear_all_sync(self) -> int:
        if not self.cache_dir.is_dir():
            return 0

        deleted_count = 0
        for pattern in (f"*{CacheConfig.FILE_SUFFIX}", f"*{CacheConfig.TEMP_SUFFIX}"):
            for cache_file in self.cache_dir.glob(pattern):
                try:
                    cache_file.unlink()
                except FileNotFoundError:
                    continue
                deleted_count += 1

        logger.info("Cleared %d iteration cache files", deleted_count)
        return deleted_count

    def _get_all_metadata_sync(self) -> list[CacheMetadata]:
        if not self.cache_dir.is_dir():
            return []

        metadata: list[CacheMetadata] = []
        for cache_file in sorted(self.cache_dir.glob(f"*{CacheConfig.FILE_SUFFIX}")):
            try:
                raw = cache_file.read_bytes()
                entry = CacheEntry.model_validate(orjson.loads(raw))
            except FileNotFoundError:
                continue
            except (orjson.JSONDecodeError, ValidationError) as e:
                logger.warning("Skipping unreadable cache file %s: %s", cache_file.name, e)
                continue

            metadata.append(
                CacheMetadata(
                    iteration_id=entry.iteration_id,
                    last_fetched=entry.last_fetched,
                    file_size=len(raw),
                )
            )
        return metadata


__all__ = ["IterationCacheRepository", "sanitize_key"]
