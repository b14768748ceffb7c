import time

import pytest

from connector_sync.integrations.core.rate_limiter import (
    RateLimitConfig,
    RateLimiterRegistry,
    TokenBucketRateLimiter,
)


class TestTokenBucketRateLimiter:
    @pytest.mark.asyncio
    async def test_burst_is_served_immediately(self):
        limiter = TokenBucketRateLimiter("fake:rest", RateLimitConfig(1.0, burst_size=3))

        started = time.monotonic()
        for _ in range(3):
            await limiter.acquire()

        assert time.monotonic() - started < 0.5
        assert limiter.available_tokens < 1

    @pytest.mark.asyncio
    async def test_empty_bucket_waits_for_refill(self):
        limiter = TokenBucketRateLimiter("fake:rest", RateLimitConfig(20.0, burst_size=1))
        await limiter.acquire()

        started = time.monotonic()
        await limiter.acquire()

        assert time.monotonic() - started >= 0.03

    @pytest.mark.asyncio
    async def test_pause_blocks_until_retry_after(self):
        limiter = TokenBucketRateLimiter("fake:rest", RateLimitConfig(100.0, burst_size=10))
        limiter.pause(0.1)

        started = time.monotonic()
        await limiter.acquire()

        assert time.monotonic() - started >= 0.09


class TestRateLimiterRegistry:
    def test_same_endpoint_shares_a_limiter(self):
        registry = RateLimiterRegistry()

        first = registry.get_limiter("jira", "rest")
        second = registry.get_limiter("jira", "rest")
        other = registry.get_limiter("teams", "rest")

        assert first is second
        assert first is not other
        assert first.name == "jira:rest"
