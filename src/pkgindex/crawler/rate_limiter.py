"""
Rate limiting for registry requests.

Each worker owns one TokenBucketLimiter so a slow endpoint on one worker
never starves the others.
"""

import asyncio
import time
from typing import Callable

from pkgindex.utils.logging import get_logger

logger = get_logger(__name__)


class TokenBucketLimiter:
    """
    Token bucket rate limiter.

    The bucket holds at most max_tokens and starts full. One token is
    added for every elapsed refill_interval; tokens never exceed the
    capacity. Each allowed request consumes one token.

    Example:
        >>> limiter = TokenBucketLimiter(max_tokens=5, refill_interval=0.1)
        >>> # Five requests pass immediately, then one per 100ms
        >>> for record in records:
        ...     await limiter.wait()
        ...     await fetch(record)
    """

    def __init__(
        self,
        max_tokens: int = 1,
        refill_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize token bucket limiter.

        Args:
            max_tokens: Burst capacity. Values below 1 are clamped to 1.
            refill_interval: Seconds per added token. 0 disables limiting.
            clock: Monotonic time source, replaceable in tests
        """
        if max_tokens <= 0:
            logger.warning(
                f"Invalid max_tokens={max_tokens}, using 1 instead")
            max_tokens = 1

        self.max_tokens = max_tokens
        self.refill_interval = max(0.0, refill_interval)
        self._clock = clock
        self._tokens = max_tokens
        self._last_refill = clock()

    def _refill(self) -> None:
        """Add the tokens earned since the last refill."""
        now = self._clock()
        elapsed = now - self._last_refill
        earned = int(elapsed // self.refill_interval)
        if earned <= 0:
            return

        self._tokens = min(self.max_tokens, self._tokens + earned)
        if self._tokens == self.max_tokens:
            self._last_refill = now
        else:
            # Keep the partial interval so refills stay on schedule
            self._last_refill += earned * self.refill_interval

    def allow(self) -> bool:
        """
        Try to take a token without waiting.

        Returns:
            True if a token was available and consumed
        """
        if self.refill_interval == 0:
            return True

        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    async def wait(self) -> float:
        """
        Wait until a token is available and consume it.

        Sleeps until the next refill instead of polling; cancellation
        propagates from the sleep.

        Returns:
            Time waited in seconds
        """
        waited = 0.0
        while not self.allow():
            delay = self.refill_interval - (self._clock() - self._last_refill)
            delay = min(self.refill_interval, max(delay, 0.001))
            await asyncio.sleep(delay)
            waited += delay
        return waited

    @property
    def available_tokens(self) -> int:
        """Tokens currently in the bucket."""
        if self.refill_interval == 0:
            return self.max_tokens
        self._refill()
        return self._tokens

    def reset(self) -> None:
        """Refill the bucket to capacity."""
        self._tokens = self.max_tokens
        self._last_refill = self._clock()
