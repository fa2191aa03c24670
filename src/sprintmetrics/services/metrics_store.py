"""JSON file store for calculated metrics.

All metrics live in one ``metrics.json`` object keyed by metric id. Every
mutation is a read-modify-write of the whole file, serialized by an
``asyncio.Lock`` and written atomically.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import orjson
from pydantic import ValidationError

from sprintmetrics.core.metrics import Metric
from sprintmetrics.shared.constants import CacheConfig
from sprintmetrics.shared.dates import parse_timestamp, try_parse_timestamp
from sprintmetrics.shared.errors import (
    DomainError,
    ErrorCode,
    ErrorContext,
    InfrastructureError,
    create_file_error,
)
from sprintmetrics.shared.logging import log_operation_error

logger = logging.getLogger(__name__)


class FileMetricsRepository:
    """Persists ``Metric`` objects in ``<data_dir>/metrics.json``.

    Args:
        data_dir: Directory of the store. Created on first write.
    """

    def __init__(self, data_dir: str | Path = CacheConfig.METRICS_DIR) -> None:
        self.data_dir = Path(data_dir)
        self.file_path = self.data_dir / CacheConfig.METRICS_FILE
        self._lock = asyncio.Lock()

    async def save(self, metric: Metric) -> None:
        """Insert or replace ``metric`` under its id."""
        async with self._lock:
            metrics = await asyncio.to_thread(self._load)
            metrics[metric.id] = metric.to_json_dict()
            await asyncio.to_thread(self._write, metrics)
        logger.debug("Saved metric %s for iteration %s", metric.id, metric.iteration_id)

    async def find_by_id(self, metric_id: str) -> Metric | None:
        metrics = await asyncio.to_thread(self._load)
        data = metrics.get(metric_id)
        return self._to_metric(data) if data is not None else None

    async def find_by_iteration_id(self, iteration_id: str) -> Metric | None:
        """First stored metric of the iteration, if any."""
        metrics = await asyncio.to_thread(self._load)
        for data in metrics.values():
            if data.get("iterationId") == iteration_id:
                return self._to_metric(data)
        return None

    async def find_by_date_range(self, start_date: str, end_date: str) -> list[Metric]:
        """Metrics whose iteration starts within ``[start_date, end_date]``."""
        start = parse_timestamp(start_date)
        end = parse_timestamp(end_date)
        metrics = await asyncio.to_thread(self._load)

        matching = []
        for data in metrics.values():
            metric_start = try_parse_timestamp(data.get("startDate"))
            if metric_start is not None and start <= metric_start <= end:
                matching.append(self._to_metric(data))
        return matching

    async def find_all(self) -> list[Metric]:
        metrics = await asyncio.to_thread(self._load)
        return [self._to_metric(data) for data in metrics.values()]

    async def delete(self, metric_id: str) -> bool:
        """Remove one metric; ``False`` if it was not stored."""
        async with self._lock:
            metrics = await asyncio.to_thread(self._load)
            if metric_id not in metrics:
                return False
            del metrics[metric_id]
            await asyncio.to_thread(self._write, metrics)
        return True

    async def delete_all(self) -> int:
        """Empty the store and return how many metrics were removed."""
        async with self._lock:
            metrics = await asyncio.to_thread(self._load)
            await asyncio.to_thread(self._write, {})
        logger.info("Deleted %d stored metrics", len(metrics))
        return len(metrics)

    def _to_metric(self, data: dict[str, Any]) -> Metric:
        try:
            return Metric.model_validate(data)
        except ValidationError as e:
            raise self._corrupted(f"invalid metric entry: {e.error_count()} error(s)", e) from e

    def _corrupted(self, reason: str, original_error: Exception) -> DomainError:
        error = DomainError(
            ErrorCode.METRICS_STORE_CORRUPTED,
            f"Metrics store corrupted: {reason}",
            ErrorContext(operation="metrics_store_load", file_path=str(self.file_path)),
            original_error,
        )
        log_operation_error(logger=logger, error=error)
        return error

    def _file_error(self, action: str, original_error: OSError) -> InfrastructureError:
        error = create_file_error(
            f"Failed to {action} metrics store: {original_error}",
            str(self.file_path),
            operation=f"metrics_store_{action}",
            original_error=original_error,
            write=action == "write",
        )
        log_operation_error(logger=logger, error=error)
        return error

    def _load(self) -> dict[str, dict[str, Any]]:
        try:
            raw = self.file_path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise self._file_error("read", e) from e

        try:
            decoded = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise self._corrupted(str(e), e) from e
        if not isinstance(decoded, dict):
            msg = f"expected a JSON object, got {type(decoded).__name__}"
            raise self._corrupted(msg, TypeError(msg))
        for metric_id, value in decoded.items():
            if not isinstance(value, dict):
                msg = f"entry {metric_id!r} is a {type(value).__name__}, not an object"
                raise self._corrupted(msg, TypeError(msg))
        return decoded

    def _write(self, metrics: dict[str, dict[str, Any]]) -> None:
        serialized = orjson.dumps(metrics, option=orjson.OPT_INDENT_2)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.data_dir,
                prefix=f"{self.file_path.stem}.",
                suffix=CacheConfig.TEMP_SUFFIX,
            )
        except OSError as e:
            raise self._file_error("write", e) from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(serialized)
            os.replace(tmp_name, self.file_path)
        except BaseException as e:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            if isinstance(e, OSError):
                raise self._file_error("write", e) from e
            raise


__all__ = ["FileMetricsRepository"]
