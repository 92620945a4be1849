"""
Core module for pacedreq package.

This module contains the resilient request engine:
- Error taxonomy and failure classification
- Cooperative cancellation
- Adaptive token bucket rate limiting
- Exponential backoff with jitter
- Request and batch executors
"""

from .exceptions import (
    ErrorKind,
    PacedReqError,
    RequestError,
    TransportError,
    classify,
    detect_body_error,
    is_retryable,
)
from .cancellation import CancelToken
from .rate_limiter import RateLimiter, RateLimitConfig, TokenBucketRateLimiter
from .backoff import Backoff, ExecutionConfig, apply_jitter, compute_backoff
from .executors import (
    Attempt,
    AttemptOutcome,
    BatchExecutor,
    ExecutionResult,
    RequestExecutor,
)

__all__ = [
    # Exceptions
    'ErrorKind',
    'PacedReqError',
    'RequestError',
    'TransportError',
    'classify',
    'detect_body_error',
    'is_retryable',
    # Cancellation
    'CancelToken',
    # Rate limiting
    'RateLimiter',
    'RateLimitConfig',
    'TokenBucketRateLimiter',
    # Retry
    'Backoff',
    'ExecutionConfig',
    'apply_jitter',
    'compute_backoff',
    # Executors
    'Attempt',
    'AttemptOutcome',
    'BatchExecutor',
    'ExecutionResult',
    'RequestExecutor',
]
