"""Implementation of a token-bucket rate limiter.

Controls the frequency of outgoing backend requests. Tokens refill lazily,
computed from the elapsed time whenever the bucket is consulted, so there is
no timer to manage.
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 100.0
DEFAULT_REFILL_RATE = 10.0  # tokens per second


class TokenBucketRateLimiter:
    """Token-bucket admission control shared by every outbound operation."""

    def __init__(
        self,
        max_tokens: float = DEFAULT_MAX_TOKENS,
        refill_rate: float = DEFAULT_REFILL_RATE,
        initial_tokens: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the rate limiter.

        Args:
            max_tokens: Bucket capacity.
            refill_rate: Tokens added per second.
            initial_tokens: Starting level (defaults to a full bucket).
            clock: Monotonic time source (injectable for tests).
        """
        if max_tokens <= 0 or refill_rate <= 0:
            raise ValueError("Max tokens and refill rate must be positive.")
        self.max_tokens = float(max_tokens)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        start = self.max_tokens if initial_tokens is None else float(initial_tokens)
        self._tokens = min(self.max_tokens, max(0.0, start))
        self._last_refill = clock()
        self._lock = threading.Lock()
        logger.info(f"TokenBucketRateLimiter initialized: {self.max_tokens} tokens, refill {self.refill_rate}/s")

    def _refill(self) -> None:
        """Adds the tokens earned since the last refill, capped at capacity."""
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.max_tokens, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    @property
    def tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def try_acquire(self, cost: float = 1) -> bool:
        """Takes `cost` tokens if available. Never blocks."""
        if cost <= 0:
            raise ValueError("Acquire cost must be positive.")
        with self._lock:
            self._refill()
            if self._tokens >= cost:
                self._tokens -= cost
                return True
        logger.debug(f"Rate limit denied request (cost={cost}).")
        return False

    def wait_time(self, cost: float = 1) -> float:
        """Seconds until `cost` tokens will be available. 0 if available now."""
        if cost > self.max_tokens:
            raise ValueError(f"Cost {cost} exceeds bucket capacity {self.max_tokens}.")
        with self._lock:
            self._refill()
            missing = cost - self._tokens
        return max(0.0, missing / self.refill_rate)

    async def wait_for_permission(self, cost: float = 1) -> None:
        """Waits until `cost` tokens can be taken, then takes them.

        Only background work (queue replay) should wait; callers of
        read/write get a RateLimitError instead.
        """
        while not self.try_acquire(cost):
            delay = self.wait_time(cost)
            logger.debug(f"Rate limit reached. Waiting for {delay:.2f} seconds.")
            await asyncio.sleep(delay)

    def reset(self) -> None:
        """Refills the bucket completely."""
        with self._lock:
            self._tokens = self.max_tokens
            self._last_refill = self._clock()
