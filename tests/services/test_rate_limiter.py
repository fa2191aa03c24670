"""Unit tests for RateLimitManager."""

from unittest.mock import AsyncMock, patch

import pytest

from sprintmetrics.services.rate_limiter import MAX_BACKOFF_MS, RateLimitManager
from sprintmetrics.shared.errors import ApplicationError


class TestRateLimitManager:
    """Test cases for RateLimitManager."""

    def test_initialization_defaults(self):
        limiter = RateLimitManager()

        assert limiter.max_backoff_ms == MAX_BACKOFF_MS
        assert limiter.delay_count == 0
        assert limiter.total_delay_ms == 0

    def test_negative_max_backoff_rejected(self):
        with pytest.raises(ApplicationError):
            RateLimitManager(max_backoff_ms=-1)

    @pytest.mark.asyncio
    async def test_delay_sleeps_in_seconds(self):
        limiter = RateLimitManager()

        with patch("sprintmetrics.services.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep:
            await limiter.delay(250)

        sleep.assert_awaited_once_with(0.25)
        assert limiter.delay_count == 1
        assert limiter.total_delay_ms == 250

    @pytest.mark.asyncio
    async def test_non_positive_delay_returns_immediately(self):
        limiter = RateLimitManager()

        with patch("sprintmetrics.services.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep:
            await limiter.delay(0)
            await limiter.delay(-5)

        sleep.assert_not_awaited()
        assert limiter.delay_count == 0


class TestBackoff:
    """Test retry back-off computation."""

    def test_exponential_schedule(self):
        limiter = RateLimitManager()

        assert limiter.backoff_ms(0, 1.0) == 1000
        assert limiter.backoff_ms(1, 1.0) == 2000
        assert limiter.backoff_ms(2, 1.0) == 4000

    def test_retry_after_takes_precedence(self):
        limiter = RateLimitManager()

        assert limiter.backoff_ms(3, 1.0, retry_after_s=2) == 2000

    def test_capped_at_maximum(self):
        limiter = RateLimitManager(max_backoff_ms=5000)

        assert limiter.backoff_ms(10, 1.0) == 5000
        assert limiter.backoff_ms(0, 1.0, retry_after_s=120) == 5000

    @pytest.mark.asyncio
    async def test_backoff_delegates_to_delay(self):
        limiter = RateLimitManager()
        limiter.delay = AsyncMock()

        await limiter.backoff(1, 0.5)

        limiter.delay.assert_awaited_once_with(1000)
