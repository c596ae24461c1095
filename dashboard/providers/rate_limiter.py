"""Token bucket rate limiter for per-minute API quotas."""

import asyncio
import logging
import time
from typing import Any, Dict

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Token bucket limiter.

    Refills rpm tokens per minute, one request consumes one token. When the
    bucket is empty, acquire() sleeps until the next token arrives. A 429
    from upstream drains the bucket so the following calls back off.

    Attributes:
        rpm: Requests per minute
        error_429_count: Count of 429 responses seen
    """

    def __init__(self, rpm: int = 5, clock=time.monotonic, sleep=asyncio.sleep):
        if rpm <= 0:
            raise ValueError("rpm must be positive")

        self.rpm = rpm
        self.capacity = float(rpm)
        self.current_tokens = float(rpm)
        self.error_429_count = 0
        self.total_requests = 0

        self._clock = clock
        self._sleep = sleep
        self._last_refill_ts = clock()
        self.lock = asyncio.Lock()

    async def acquire(self, wait: bool = True) -> bool:
        """
        Take a token.

        Returns:
            True when acquired, False if none available and wait=False
        """
        async with self.lock:
            self._refill_tokens()

            if self.current_tokens < 1:
                if not wait:
                    return False
                wait_time = self._seconds_until_token()
                logger.info("Rate limit reached. Waiting %.2fs...", wait_time)
                await self._sleep(wait_time)
                self._refill_tokens()
                # Sleep may return early under a fake clock; never go negative twice
                self.current_tokens = max(self.current_tokens, 1.0)

            self.current_tokens -= 1
            self.total_requests += 1
            logger.debug("Token acquired. Remaining: %.2f/min", self.current_tokens)
            return True

    def record_429(self) -> None:
        """Drain the bucket after an upstream 429."""
        self.error_429_count += 1
        self.current_tokens = 0.0
        self._last_refill_ts = self._clock()
        logger.warning("Upstream 429 recorded (total %d); bucket drained", self.error_429_count)

    def _refill_tokens(self) -> None:
        now = self._clock()
        elapsed_min = (now - self._last_refill_ts) / 60.0
        self.current_tokens = min(self.capacity, self.current_tokens + elapsed_min * self.rpm)
        self._last_refill_ts = now

    def _seconds_until_token(self) -> float:
        return max(0.0, (1 - self.current_tokens) * 60.0 / self.rpm)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "rpm": self.rpm,
            "tokens": round(self.current_tokens, 2),
            "total_requests": self.total_requests,
            "error_429_count": self.error_429_count,
        }
