"""Tests for PipelineClient, including enrichment degradation."""

from __future__ import annotations

import pytest

from sprintmetrics.services.gitlab.error_transformer import http_status_error
from sprintmetrics.services.gitlab.pipeline_client import PipelineClient


class TestFetchPipelinesForProject:
    """Test per-project pipeline reads."""

    @pytest.mark.asyncio
    async def test_filters_by_created_at(self, executor, rate_limiter, connection):
        executor.execute.return_value = {
            "project": {
                "pipelines": connection(
                    [
                        {"id": "p1", "createdAt": "2025-01-10T12:00:00Z"},
                        {"id": "p2", "createdAt": "2025-01-14T23:00:00Z"},
                        {"id": "p3", "createdAt": "2025-01-15T01:00:00Z"},
                        {"id": "p4", "createdAt": None},
                    ]
                )
            }
        }
        client = PipelineClient(executor, rate_limiter, "acme")

        pipelines = await client.fetch_pipelines_for_project(
            "acme/app", "main", "2025-01-01", "2025-01-14"
        )

        assert [p["id"] for p in pipelines] == ["p1", "p2"]
        variables = executor.execute.await_args.args[1]
        assert variables["ref"] == "main"
        assert variables["updatedAfter"].startswith("2025-01-01T00:00:00")

    @pytest.mark.asyncio
    async def test_failure_degrades_to_empty(self, executor, rate_limiter):
        executor.execute.side_effect = http_status_error(503, "Unavailable", "fetching pipelines")
        client = PipelineClient(executor, rate_limiter, "acme")

        assert await client.fetch_pipelines_for_project("acme/app") == []


class TestFetchPipelinesForGroup:
    """Test the group-wide fan-out."""

    @pytest.mark.asyncio
    async def test_tags_pipelines_with_project(self, executor, rate_limiter, connection):
        async def execute(query, variables, context):
            if "getGroupProjects" in query:
                return {
                    "group": {
                        "projects": connection(
                            [{"fullPath": "acme/app"}, {"fullPath": "acme/web"}]
                        )
                    }
                }
            return {
                "project": {
                    "pipelines": connection(
                        [{"id": f"{variables['fullPath']}#1", "createdAt": "2025-01-02T00:00:00Z"}]
                    )
                }
            }

        executor.execute.side_effect = execute
        client = PipelineClient(executor, rate_limiter, "acme")

        pipelines = await client.fetch_pipelines_for_group("2025-01-01", "2025-01-14", "main")

        assert sorted((p["id"], p["projectPath"]) for p in pipelines) == [
            ("acme/app#1", "acme/app"),
            ("acme/web#1", "acme/web"),
        ]

    @pytest.mark.asyncio
    async def test_missing_group_degrades_to_empty(self, executor, rate_limiter):
        executor.execute.return_value = {"group": None}
        client = PipelineClient(executor, rate_limiter, "acme")

        assert await client.fetch_pipelines_for_group("2025-01-01", "2025-01-14") == []
        executor.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_project_failure_keeps_other_projects(self, executor, rate_limiter, connection):
        async def execute(query, variables, context):
            if "getGroupProjects" in query:
                return {
                    "group": {
                        "projects": connection(
                            [{"fullPath": "acme/app"}, {"fullPath": "acme/broken"}]
                        )
                    }
                }
            if variables["fullPath"] == "acme/broken":
                raise http_status_error(500, "Internal Server Error", context)
            return {
                "project": {
                    "pipelines": connection([{"id": "ok", "createdAt": "2025-01-02T00:00:00Z"}])
                }
            }

        executor.execute.side_effect = execute
        client = PipelineClient(executor, rate_limiter, "acme")

        pipelines = await client.fetch_pipelines_for_group("2025-01-01", "2025-01-14")

        assert [p["id"] for p in pipelines] == ["ok"]
