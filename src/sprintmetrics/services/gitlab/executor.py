"""GraphQL execution boundary for the GitLab API.

All domain clients funnel their queries through ``GraphQLExecutor.execute``.
It owns the aiohttp session, authentication, response decoding, error
normalization and the retry loop for retryable failures.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import aiohttp
import orjson

from sprintmetrics.config.settings import GitLabSettings
from sprintmetrics.services.gitlab.error_transformer import (
    graphql_field_error,
    http_status_error,
    normalize_transport_error,
)
from sprintmetrics.services.rate_limiter import RateLimitManager
from sprintmetrics.shared.constants import ContentTypes, HTTPHeaders, HTTPStatusCodes
from sprintmetrics.shared.errors import TransportError
from sprintmetrics.shared.logging import log_api_call, log_operation_error

logger = logging.getLogger(__name__)


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class GraphQLExecutor:
    """Sends GraphQL documents to ``<url>/api/graphql``.

    Retryable transport failures (connection reset, timeout, 429, 5xx) are
    retried up to ``settings.retry_attempts`` times with exponential
    back-off. Everything else surfaces immediately as a ``TransportError``.

    Args:
        settings: GitLab connection settings
        rate_limiter: Used for retry back-off sleeps
        session: Optional pre-built session. The executor closes only
            sessions it created itself.
    """

    def __init__(
        self,
        settings: GitLabSettings,
        rate_limiter: RateLimitManager | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.settings = settings
        self.endpoint = settings.graphql_url
        self._rate_limiter = rate_limiter or RateLimitManager()
        self._session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()

    async def __aenter__(self) -> GraphQLExecutor:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            async with self._session_lock:
                if self._session is None:
                    self._session = aiohttp.ClientSession(
                        timeout=aiohttp.ClientTimeout(total=self.settings.timeout),
                    )
                    self._owns_session = True
        return self._session

    def _headers(self) -> dict[str, str]:
        return {
            HTTPHeaders.AUTHORIZATION: f"Bearer {self.settings.token}",
            HTTPHeaders.CONTENT_TYPE: ContentTypes.JSON,
            HTTPHeaders.ACCEPT: ContentTypes.JSON,
        }

    async def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        context: str = "executing GraphQL query",
    ) -> dict[str, Any]:
        """Run a query and return its ``data`` object.

        Args:
            query: GraphQL document
            variables: Query variables
            context: Short description used in error messages,
                e.g. "fetching iterations"

        Raises:
            TransportError: When the request fails after all permitted retries
        """
        max_retries = self.settings.retry_attempts
        attempt = 0
        while True:
            try:
                return await self._execute_once(query, variables or {}, context)
            except TransportError as error:
                if not error.retryable or attempt >= max_retries:
                    log_operation_error(
                        logger=logger,
                        error=error,
                        operation="graphql_execute",
                        additional_context={"attempts": attempt + 1},
                    )
                    raise
                logger.warning(
                    "Retryable GitLab failure (%s), retry %d/%d",
                    error.message,
                    attempt + 1,
                    max_retries,
                )
                await self._rate_limiter.backoff(
                    attempt,
                    self.settings.retry_delay,
                    error.retry_after,
                )
                attempt += 1

    async def _execute_once(
        self,
        query: str,
        variables: dict[str, Any],
        context: str,
    ) -> dict[str, Any]:
        session = await self._get_session()
        body = orjson.dumps({"query": query, "variables": variables})
        start = time.perf_counter()

        try:
            async with session.post(
                self.endpoint,
                data=body,
                headers=self._headers(),
            ) as response:
                log_api_call(
                    logger,
                    self.endpoint,
                    method="POST",
                    status_code=response.status,
                    duration_ms=(time.perf_counter() - start) * 1000,
                    context={"context": context},
                )
                if not HTTPStatusCodes.is_success(response.status):
                    raise http_status_error(
                        response.status,
                        response.reason or "",
                        context,
                        retry_after=_parse_retry_after(
                            response.headers.get(HTTPHeaders.RETRY_AFTER)
                        ),
                    )
                payload = await response.json(loads=orjson.loads, content_type=None)
        except TransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            raise normalize_transport_error(e, context) from e

        if not isinstance(payload, dict):
            raise normalize_transport_error(
                ValueError(f"unexpected response body of type {type(payload).__name__}"),
                context,
            )

        errors = payload.get("errors")
        if errors:
            raise graphql_field_error(errors, context)

        return payload.get("data") or {}


__all__ = ["GraphQLExecutor"]
