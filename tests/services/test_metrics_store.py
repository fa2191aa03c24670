"""Tests for FileMetricsRepository."""

from __future__ import annotations

import asyncio
from pathlib import Path

import orjson
import pytest

from sprintmetrics.core.metrics import Metric
from sprintmetrics.services.metrics_store import FileMetricsRepository
from sprintmetrics.shared.errors import DomainError, ErrorCode, InfrastructureError


def make_metric(iteration: int, start_date: str, **overrides) -> Metric:
    values = {
        "iteration_id": f"gid://gitlab/Iteration/{iteration}",
        "iteration_title": f"Sprint {iteration}",
        "start_date": start_date,
        "end_date": start_date,
        "velocity_points": 8,
    }
    values.update(overrides)
    return Metric(**values)


@pytest.fixture
def store(tmp_path: Path) -> FileMetricsRepository:
    return FileMetricsRepository(tmp_path / "data")


class TestSaveAndFind:
    @pytest.mark.asyncio
    async def test_empty_store(self, store):
        assert await store.find_all() == []
        assert await store.find_by_id("metric-1") is None
        assert not store.file_path.exists()

    @pytest.mark.asyncio
    async def test_save_and_find_by_id(self, store):
        metric = make_metric(1, "2025-01-01")

        await store.save(metric)

        assert await store.find_by_id(metric.id) == metric
        on_disk = orjson.loads(store.file_path.read_bytes())
        assert on_disk[metric.id]["iterationTitle"] == "Sprint 1"

    @pytest.mark.asyncio
    async def test_save_replaces_same_id(self, store):
        metric = make_metric(1, "2025-01-01")
        await store.save(metric)

        await store.save(metric.model_copy(update={"velocity_points": 13}))

        stored = await store.find_all()
        assert len(stored) == 1
        assert stored[0].velocity_points == 13

    @pytest.mark.asyncio
    async def test_find_by_iteration_id(self, store):
        first = make_metric(1, "2025-01-01")
        await store.save(first)
        await store.save(make_metric(2, "2025-01-15"))

        found = await store.find_by_iteration_id("gid://gitlab/Iteration/1")

        assert found is not None
        assert found.id == first.id
        assert await store.find_by_iteration_id("gid://gitlab/Iteration/9") is None

    @pytest.mark.asyncio
    async def test_find_by_date_range(self, store):
        for iteration, start in ((1, "2025-01-01"), (2, "2025-01-15"), (3, "2025-02-01")):
            await store.save(make_metric(iteration, start))

        found = await store.find_by_date_range("2025-01-01", "2025-01-31")

        assert sorted(m.iteration_title for m in found) == ["Sprint 1", "Sprint 2"]

    @pytest.mark.asyncio
    async def test_concurrent_saves_keep_every_metric(self, store):
        metrics = [make_metric(i, "2025-01-01") for i in range(10)]

        await asyncio.gather(*(store.save(metric) for metric in metrics))

        assert len(await store.find_all()) == 10

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, store):
        await store.save(make_metric(1, "2025-01-01"))

        assert [p.name for p in store.data_dir.iterdir()] == ["metrics.json"]


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete(self, store):
        metric = make_metric(1, "2025-01-01")
        await store.save(metric)

        assert await store.delete(metric.id) is True
        assert await store.delete(metric.id) is False
        assert await store.find_by_id(metric.id) is None

    @pytest.mark.asyncio
    async def test_delete_all(self, store):
        await store.save(make_metric(1, "2025-01-01"))
        await store.save(make_metric(2, "2025-01-15"))

        assert await store.delete_all() == 2
        assert await store.find_all() == []
        assert await store.delete_all() == 0


class TestCorruption:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        [b"{ broken", b"[1, 2, 3]", b'{"metric-1": {"iterationId": ""}}'],
    )
    async def test_corrupted_store(self, store, content):
        store.data_dir.mkdir(parents=True)
        store.file_path.write_bytes(content)

        with pytest.raises(DomainError) as exc_info:
            await store.find_all()

        assert exc_info.value.code == ErrorCode.METRICS_STORE_CORRUPTED
        assert "corrupted" in exc_info.value.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "lookup",
        [
            lambda store: store.find_by_iteration_id("gid://gitlab/Iteration/1"),
            lambda store: store.find_by_date_range("2025-01-01", "2025-01-31"),
            lambda store: store.save(make_metric(1, "2025-01-01")),
        ],
        ids=["by_iteration", "by_date_range", "save"],
    )
    async def test_non_object_entry(self, store, lookup):
        store.data_dir.mkdir(parents=True)
        store.file_path.write_bytes(b'{"metric-1": 5}')

        with pytest.raises(DomainError) as exc_info:
            await lookup(store)

        assert exc_info.value.code == ErrorCode.METRICS_STORE_CORRUPTED
        assert "metric-1" in exc_info.value.message


class TestFileErrors:
    @pytest.mark.asyncio
    async def test_unreadable_store(self, store):
        store.file_path.mkdir(parents=True)

        with pytest.raises(InfrastructureError) as exc_info:
            await store.find_all()

        assert exc_info.value.code == ErrorCode.FILE_READ_ERROR
        assert exc_info.value.context.file_path == str(store.file_path)

    @pytest.mark.asyncio
    async def test_temp_file_not_created(self, store, mocker):
        mocker.patch(
            "sprintmetrics.services.metrics_store.tempfile.mkstemp",
            side_effect=OSError(28, "No space left on device"),
        )

        with pytest.raises(InfrastructureError) as exc_info:
            await store.save(make_metric(1, "2025-01-01"))

        assert exc_info.value.code == ErrorCode.FILE_WRITE_ERROR

    @pytest.mark.asyncio
    async def test_failed_replace_leaves_no_temp_file(self, store, mocker):
        mocker.patch(
            "sprintmetrics.services.metrics_store.os.replace",
            side_effect=PermissionError("read-only"),
        )

        with pytest.raises(InfrastructureError) as exc_info:
            await store.save(make_metric(1, "2025-01-01"))

        assert exc_info.value.code == ErrorCode.FILE_WRITE_ERROR
        assert list(store.data_dir.iterdir()) == []
