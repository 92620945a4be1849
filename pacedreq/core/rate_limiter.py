"""
Adaptive rate limiting module for pacing outbound requests.

One limiter is shared by every request issued through a client, so all
concurrent callers pace against a single budget. The rate can be lowered
at runtime when the remote service signals that it is overloaded.
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .cancellation import CancelToken

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for token bucket rate limiting."""
    rate: float = 10.0              # Requests per second
    burst: int = 10                 # Bucket capacity
    min_rate: float = 0.01          # Floor applied to every rate adjustment
    poll_interval: float = 0.05     # Longest uninterrupted wait between re-checks

    def __post_init__(self):
        if not self.min_rate > 0:
            raise ValueError("min_rate must be > 0")
        if not self.rate > 0:
            raise ValueError("rate must be > 0")
        if self.burst < 1:
            raise ValueError("burst must be >= 1")
        if not self.poll_interval > 0:
            raise ValueError("poll_interval must be > 0")


class RateLimiter(ABC):
    """
    Abstract base class for rate limiters used by the request executor.
    """

    @abstractmethod
    async def acquire(self, cancel: Optional[CancelToken] = None) -> bool:
        """
        Wait until one more request is admitted.

        Returns:
            bool: True when admitted, False if cancel fired first (in which
            case no budget was consumed)
        """

    @abstractmethod
    def get_rate(self) -> float:
        """Get the currently effective rate in requests per second."""

    @abstractmethod
    def set_rate(self, rate: float) -> None:
        """Replace the permitted rate; applies to waiting callers too."""


class TokenBucketRateLimiter(RateLimiter):
    """
    Token bucket rate limiter.

    Features:
    - Average rate with a burst allowance
    - Rate adjustable at runtime, clamped to a positive floor
    - Waits are interruptible by a CancelToken
    - Thread-safe bookkeeping; the lock is never held while waiting
    """

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config or RateLimitConfig()
        self._lock = threading.Lock()
        self._rate = self._clamp(self.config.rate)
        self._tokens = float(self.config.burst)
        self._last_refill = time.monotonic()

    def _clamp(self, rate: float) -> float:
        # Also rejects NaN
        if not rate > self.config.min_rate:
            return self.config.min_rate
        return float(rate)

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self.config.burst), self._tokens + elapsed * self._rate)
        self._last_refill = now

    def _try_take(self) -> float:
        """Take a token if one is available; otherwise return the wait until one is."""
        with self._lock:
            self._refill(time.monotonic())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0
            return (1.0 - self._tokens) / self._rate

    @property
    def rate(self) -> float:
        return self.get_rate()

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill(time.monotonic())
            return self._tokens

    def get_rate(self) -> float:
        with self._lock:
            return self._rate

    def set_rate(self, rate: float) -> None:
        with self._lock:
            # Settle tokens earned at the old rate before switching
            self._refill(time.monotonic())
            old_rate = self._rate
            self._rate = self._clamp(rate)
            new_rate = self._rate
        logger.info("Rate limit changed from %.3f to %.3f req/s", old_rate, new_rate)

    async def acquire(self, cancel: Optional[CancelToken] = None) -> bool:
        while True:
            if cancel is not None and cancel.cancelled:
                return False

            wait_time = self._try_take()
            if wait_time <= 0:
                return True

            # Re-check often enough that set_rate() reaches waiting callers
            wait_time = min(wait_time, self.config.poll_interval)
            if cancel is None:
                await asyncio.sleep(wait_time)
            elif await cancel.wait(wait_time):
                logger.debug("Rate limiter wait cancelled")
                return False

    def get_state(self) -> Dict[str, Any]:
        """Get current rate limiter state information."""
        with self._lock:
            self._refill(time.monotonic())
            return {
                "rate": self._rate,
                "burst": self.config.burst,
                "tokens": self._tokens,
                "min_rate": self.config.min_rate,
            }

    def reset(self) -> None:
        """Reset rate limiter to its configured rate and a full bucket."""
        with self._lock:
            self._rate = self._clamp(self.config.rate)
            self._tokens = float(self.config.burst)
            self._last_refill = time.monotonic()
