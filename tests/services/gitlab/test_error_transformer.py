"""Tests for transport error normalization."""

from __future__ import annotations

import asyncio
import errno
from unittest.mock import Mock

import aiohttp
import pytest

from sprintmetrics.services.gitlab.error_transformer import (
    graphql_field_error,
    http_status_error,
    is_retryable_network_error,
    is_retryable_status,
    normalize_transport_error,
)
from sprintmetrics.shared.errors import ErrorCode, TransportError, TransportErrorKind

CONTEXT = "fetching iterations"


class TestRetryability:
    """Test retryable classification."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert is_retryable_status(status) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_non_retryable_statuses(self, status):
        assert is_retryable_status(status) is False

    @pytest.mark.parametrize(
        "error",
        [
            asyncio.TimeoutError(),
            ConnectionResetError("reset by peer"),
            OSError(errno.ECONNRESET, "reset"),
            OSError(errno.ETIMEDOUT, "timed out"),
        ],
    )
    def test_retryable_network_errors(self, error):
        assert is_retryable_network_error(error) is True

    @pytest.mark.parametrize(
        "error",
        [ValueError("bad json"), OSError(errno.ENOENT, "missing"), RuntimeError("boom")],
    )
    def test_non_retryable_network_errors(self, error):
        assert is_retryable_network_error(error) is False


class TestErrorBuilders:
    """Test the message formats of each error kind."""

    def test_graphql_field_error(self):
        error = graphql_field_error([{"message": "boom"}, {"message": "bang"}], CONTEXT)

        assert error.kind == TransportErrorKind.GRAPHQL_FIELD_ERROR
        assert error.code == ErrorCode.GRAPHQL_ERROR
        assert error.message == "GitLab API Error (fetching iterations): boom; bang"
        assert error.messages == ["boom", "bang"]
        assert error.retryable is False

    def test_http_status_error_rate_limited(self):
        error = http_status_error(429, "Too Many Requests", CONTEXT, retry_after=5.0)

        assert error.kind == TransportErrorKind.HTTP_STATUS_ERROR
        assert error.code == ErrorCode.API_RATE_LIMIT
        assert error.message == "HTTP 429 (fetching iterations): Too Many Requests"
        assert error.retryable is True
        assert error.status == 429
        assert error.retry_after == 5.0

    def test_http_status_error_server(self):
        error = http_status_error(502, "Bad Gateway", CONTEXT)

        assert error.code == ErrorCode.API_SERVER_ERROR
        assert error.retryable is True

    def test_http_status_error_client(self):
        error = http_status_error(401, "Unauthorized", CONTEXT)

        assert error.code == ErrorCode.API_REQUEST_FAILED
        assert error.retryable is False


class TestNormalizeTransportError:
    """Test normalize_transport_error."""

    def test_transport_error_passes_through(self):
        original = graphql_field_error(["x"], CONTEXT)

        assert normalize_transport_error(original, CONTEXT) is original

    def test_client_response_error(self):
        error = aiohttp.ClientResponseError(
            request_info=Mock(),
            history=(),
            status=503,
            message="Service Unavailable",
        )

        normalized = normalize_transport_error(error, CONTEXT)

        assert normalized.kind == TransportErrorKind.HTTP_STATUS_ERROR
        assert normalized.status == 503
        assert normalized.retryable is True
        assert normalized.message == "HTTP 503 (fetching iterations): Service Unavailable"
        assert normalized.original_error is error

    def test_connection_reset(self):
        normalized = normalize_transport_error(ConnectionResetError("reset by peer"), CONTEXT)

        assert isinstance(normalized, TransportError)
        assert normalized.kind == TransportErrorKind.NETWORK_ERROR
        assert normalized.code == ErrorCode.NETWORK_ERROR
        assert normalized.retryable is True
        assert normalized.message == "Failed fetching iterations: reset by peer"

    def test_timeout(self):
        normalized = normalize_transport_error(asyncio.TimeoutError(), CONTEXT)

        assert normalized.code == ErrorCode.API_TIMEOUT
        assert normalized.retryable is True
        assert normalized.message.startswith("Failed fetching iterations: ")

    def test_other_errors_not_retryable(self):
        normalized = normalize_transport_error(ValueError("unexpected body"), CONTEXT)

        assert normalized.kind == TransportErrorKind.NETWORK_ERROR
        assert normalized.retryable is False
