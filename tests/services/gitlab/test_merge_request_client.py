"""Tests for MergeRequestClient."""

from __future__ import annotations

import pytest

from sprintmetrics.services.gitlab.merge_request_client import MergeRequestClient
from sprintmetrics.shared.dates import parse_timestamp
from sprintmetrics.shared.errors import DomainError, ErrorCode, ScopeNotFoundError


class TestMergeRequestClient:
    """Test merge request and commit lookups."""

    @pytest.mark.asyncio
    async def test_merged_window_covers_whole_end_day(self, executor, rate_limiter, connection):
        merge_request = {"id": "gid://gitlab/MergeRequest/1", "state": "merged"}
        executor.execute.return_value = {"group": {"mergeRequests": connection([merge_request])}}
        client = MergeRequestClient(executor, rate_limiter, "acme")

        result = await client.fetch_merge_requests_for_group("2025-01-01", "2025-01-14")

        assert result == [merge_request]
        variables = executor.execute.await_args.args[1]
        assert parse_timestamp(variables["mergedAfter"]) == parse_timestamp("2025-01-01T00:00:00Z")
        merged_before = parse_timestamp(variables["mergedBefore"])
        assert merged_before.date().isoformat() == "2025-01-14"
        assert merged_before.hour == 23

    @pytest.mark.asyncio
    async def test_missing_group(self, executor, rate_limiter):
        executor.execute.return_value = {"group": None}
        client = MergeRequestClient(executor, rate_limiter, "acme")

        with pytest.raises(ScopeNotFoundError):
            await client.fetch_merge_requests_for_group("2025-01-01", "2025-01-14")

    @pytest.mark.asyncio
    async def test_merge_request_details(self, executor, rate_limiter):
        executor.execute.return_value = {
            "project": {"mergeRequest": {"iid": "42", "mergedAt": "2025-01-03T00:00:00Z"}}
        }
        client = MergeRequestClient(executor, rate_limiter, "acme")

        details = await client.fetch_merge_request_details("acme/app", 42)

        assert details["mergedAt"] == "2025-01-03T00:00:00Z"
        assert executor.execute.await_args.args[1] == {"fullPath": "acme/app", "iid": "42"}

    @pytest.mark.asyncio
    async def test_missing_merge_request(self, executor, rate_limiter):
        executor.execute.return_value = {"project": {"mergeRequest": None}}
        client = MergeRequestClient(executor, rate_limiter, "acme")

        with pytest.raises(DomainError) as exc_info:
            await client.fetch_merge_request_details("acme/app", "42")

        assert exc_info.value.code == ErrorCode.RESOURCE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_commit_details(self, executor, rate_limiter):
        executor.execute.return_value = {
            "project": {"repository": {"commit": {"sha": "abc123", "committedDate": "2025-01-02"}}}
        }
        client = MergeRequestClient(executor, rate_limiter, "acme")

        commit = await client.fetch_commit_details("acme/app", "abc123")

        assert commit["committedDate"] == "2025-01-02"

    @pytest.mark.asyncio
    async def test_missing_commit(self, executor, rate_limiter):
        executor.execute.return_value = {"project": None}
        client = MergeRequestClient(executor, rate_limiter, "acme")

        with pytest.raises(DomainError):
            await client.fetch_commit_details("acme/app", "abc123")
