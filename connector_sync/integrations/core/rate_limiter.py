import asyncio
import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    requests_per_second: float = 10.0
    burst_size: int = 20


class TokenBucketRateLimiter:
    """Paces requests to one vendor endpoint across every run in the process.

    A 429 from the vendor pauses the bucket until its ``Retry-After`` passes,
    so concurrent runs against the same vendor back off together.
    """

    def __init__(self, name: str, config: RateLimitConfig | None = None):
        self.name = name
        self.config = config or RateLimitConfig()
        self._tokens = float(self.config.burst_size)
        self._updated_at = time.monotonic()
        self._paused_until = 0.0
        self._lock = asyncio.Lock()

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self, cost: int = 1) -> None:
        async with self._lock:
            while True:
                delay = self._paused_until - time.monotonic()
                if delay <= 0:
                    self._refill()
                    if self._tokens >= cost:
                        self._tokens -= cost
                        return
                    delay = (cost - self._tokens) / self.config.requests_per_second
                logger.debug(f"Rate limiter {self.name} waiting {delay:.2f}s")
                await asyncio.sleep(delay)

    def pause(self, seconds: float) -> None:
        until = time.monotonic() + seconds
        if until > self._paused_until:
            self._paused_until = until
            self._tokens = 0.0
            logger.warning(f"Rate limiter {self.name} paused for {seconds}s")

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._updated_at
        self._updated_at = now
        self._tokens = min(
            self._tokens + elapsed * self.config.requests_per_second,
            float(self.config.burst_size),
        )


class RateLimiterRegistry:
    def __init__(self):
        self._limiters: dict[tuple[str, str], TokenBucketRateLimiter] = {}

    def get_limiter(
        self,
        provider_slug: str,
        endpoint_key: str,
        config: RateLimitConfig | None = None,
    ) -> TokenBucketRateLimiter:
        key = (provider_slug, endpoint_key)
        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = TokenBucketRateLimiter(f"{provider_slug}:{endpoint_key}", config)
            self._limiters[key] = limiter
        return limiter


rate_limiter_registry = RateLimiterRegistry()
