"""
Retry configuration and exponential backoff with jitter.
"""

import random
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ExecutionConfig:
    """Configuration for the request executor's retry behavior."""
    max_retries: int = 3                # Retries after the first attempt
    base_delay: float = 1.0             # Seconds before the first retry
    max_delay: float = 30.0             # Ceiling for the pre-jitter delay
    jitter: float = 0.25                # Symmetric jitter fraction
    rate_limit_damping: float = 0.8     # Rate multiplier applied on 429

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not self.base_delay > 0:
            raise ValueError("base_delay must be > 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")
        if not 0 < self.rate_limit_damping < 1:
            raise ValueError("rate_limit_damping must be between 0 and 1 (exclusive)")


def compute_backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    """Pre-jitter delay before attempt (attempt >= 1): base * 2^(attempt-1), capped."""
    if attempt < 1:
        return 0.0
    # Cap the exponent; 2**1100 overflows a float
    exponent = min(attempt - 1, 1024)
    try:
        delay = base_delay * (2.0 ** exponent)
    except OverflowError:
        return max_delay
    return min(delay, max_delay)


def apply_jitter(delay: float, fraction: float, u: float) -> float:
    """Spread delay by delay * fraction * u, with u in [-1, 1]; never negative."""
    return max(0.0, delay + delay * fraction * u)


class Backoff:
    """
    Jittered exponential backoff schedule.

    Pass a seeded random.Random to get reproducible delays.
    """

    def __init__(self, config: ExecutionConfig, rng: Optional[random.Random] = None):
        self.config = config
        self.rng = rng or random.Random()

    def base(self, attempt: int) -> float:
        return compute_backoff(attempt, self.config.base_delay, self.config.max_delay)

    def delay(self, attempt: int) -> float:
        return apply_jitter(self.base(attempt), self.config.jitter, self.rng.uniform(-1.0, 1.0))
