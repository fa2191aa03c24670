"""Fixed-delay rate limiting for paginated GitLab requests.

GitLab's GraphQL API is throttled per token. Instead of tracking a budget,
clients pause for a fixed number of milliseconds between consecutive pages
and back off exponentially between retries.
"""

from __future__ import annotations

import asyncio
import logging

from sprintmetrics.shared.errors import ApplicationError, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)

MAX_BACKOFF_MS = 60_000


class RateLimitManager:
    """Suspends the calling task between requests.

    The manager keeps no state besides counters, so one instance can be
    shared by every client of a provider.
    """

    def __init__(self, max_backoff_ms: int = MAX_BACKOFF_MS) -> None:
        if max_backoff_ms < 0:
            raise ApplicationError(
                code=ErrorCode.VALIDATION_ERROR,
                message=f"max_backoff_ms must be non-negative, got: {max_backoff_ms}",
                context=ErrorContext(
                    operation="rate_limiter_init",
                    additional_data={"max_backoff_ms": max_backoff_ms},
                ),
            )
        self.max_backoff_ms = max_backoff_ms
        self.delay_count = 0
        self.total_delay_ms = 0

    async def delay(self, ms: int) -> None:
        """Sleep for ``ms`` milliseconds. Non-positive values return immediately."""
        if ms <= 0:
            return
        self.delay_count += 1
        self.total_delay_ms += ms
        logger.debug("Rate limit delay: %dms", ms)
        await asyncio.sleep(ms / 1000)

    def backoff_ms(
        self,
        attempt: int,
        base_delay_s: float,
        retry_after_s: float | None = None,
    ) -> int:
        """Compute the wait before retry number ``attempt`` (0-based).

        A server supplied Retry-After takes precedence over the exponential
        schedule. The result is capped at ``max_backoff_ms``.
        """
        if retry_after_s is not None and retry_after_s > 0:
            delay_ms = int(retry_after_s * 1000)
        else:
            delay_ms = int(base_delay_s * (2**attempt) * 1000)
        return min(delay_ms, self.max_backoff_ms)

    async def backoff(
        self,
        attempt: int,
        base_delay_s: float,
        retry_after_s: float | None = None,
    ) -> None:
        await self.delay(self.backoff_ms(attempt, base_delay_s, retry_after_s))
