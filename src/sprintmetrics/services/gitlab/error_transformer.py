"""Normalization of GraphQL transport failures.

Every failure that crosses the executor boundary is turned into a
``TransportError`` with a stable message format and a ``retryable`` flag:

* GraphQL body errors: ``GitLab API Error (<context>): <m1>; <m2>``
* HTTP status errors: ``HTTP <status> (<context>): <reason>``
* anything else: ``Failed <context>: <detail>``

Only connection resets, timeouts, 429 and 5xx responses are retryable.
"""

from __future__ import annotations

import asyncio
import errno
from typing import Any

import aiohttp

from sprintmetrics.shared.constants import HTTPStatusCodes
from sprintmetrics.shared.errors import (
    ErrorCode,
    ErrorContext,
    TransportError,
    TransportErrorKind,
)

_RETRYABLE_ERRNOS = frozenset({errno.ECONNRESET, errno.ETIMEDOUT})


def is_retryable_status(status: int) -> bool:
    return status == HTTPStatusCodes.TOO_MANY_REQUESTS or HTTPStatusCodes.is_server_error(
        status
    )


def is_retryable_network_error(error: BaseException) -> bool:
    """True for connection resets and timeouts."""
    if isinstance(
        error,
        (asyncio.TimeoutError, ConnectionResetError, aiohttp.ServerDisconnectedError),
    ):
        return True
    return getattr(error, "errno", None) in _RETRYABLE_ERRNOS


def graphql_field_error(
    errors: list[dict[str, Any]] | list[Any],
    context: str,
) -> TransportError:
    """Build the error for a 200 response whose body carries ``errors``."""
    messages = [
        str(err.get("message", err)) if isinstance(err, dict) else str(err)
        for err in errors
    ]
    return TransportError(
        ErrorCode.GRAPHQL_ERROR,
        f"GitLab API Error ({context}): {'; '.join(messages)}",
        kind=TransportErrorKind.GRAPHQL_FIELD_ERROR,
        retryable=False,
        messages=messages,
        context=ErrorContext(
            operation="graphql_execute",
            additional_data={"context": context, "error_count": len(messages)},
        ),
    )


def http_status_error(
    status: int,
    reason: str,
    context: str,
    *,
    retry_after: float | None = None,
    original_error: Exception | None = None,
) -> TransportError:
    """Build the error for a non-2xx HTTP response."""
    if status == HTTPStatusCodes.TOO_MANY_REQUESTS:
        code = ErrorCode.API_RATE_LIMIT
    elif HTTPStatusCodes.is_server_error(status):
        code = ErrorCode.API_SERVER_ERROR
    else:
        code = ErrorCode.API_REQUEST_FAILED

    return TransportError(
        code,
        f"HTTP {status} ({context}): {reason}",
        kind=TransportErrorKind.HTTP_STATUS_ERROR,
        retryable=is_retryable_status(status),
        status=status,
        retry_after=retry_after,
        context=ErrorContext(
            operation="graphql_execute",
            additional_data={"context": context, "status": status},
        ),
        original_error=original_error,
    )


def normalize_transport_error(error: BaseException, context: str) -> TransportError:
    """Convert any exception raised while talking to GitLab into a TransportError.

    Already-normalized errors are returned unchanged.
    """
    if isinstance(error, TransportError):
        return error

    original = error if isinstance(error, Exception) else None

    if isinstance(error, aiohttp.ClientResponseError):
        return http_status_error(
            error.status,
            error.message or "",
            context,
            original_error=original,
        )

    retryable = is_retryable_network_error(error)
    code = (
        ErrorCode.API_TIMEOUT
        if isinstance(error, asyncio.TimeoutError)
        else ErrorCode.NETWORK_ERROR
    )
    detail = str(error) or type(error).__name__
    return TransportError(
        code,
        f"Failed {context}: {detail}",
        kind=TransportErrorKind.NETWORK_ERROR,
        retryable=retryable,
        context=ErrorContext(
            operation="graphql_execute",
            additional_data={
                "context": context,
                "error_type": type(error).__name__,
            },
        ),
        original_error=original,
    )


__all__ = [
    "graphql_field_error",
    "http_status_error",
    "is_retryable_network_error",
    "is_retryable_status",
    "normalize_transport_error",
]
