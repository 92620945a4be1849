import logging

# Core execution framework
from .core.executors import RequestExecutor, BatchExecutor
from .core.rate_limiter import TokenBucketRateLimiter as RateLimiter, RateLimitConfig
from .core.backoff import ExecutionConfig
from .core.cancellation import CancelToken
from .core.exceptions import (
    ErrorKind,
    PacedReqError,
    RequestError,
    TransportError,
    classify,
    is_retryable
)

# Transports
from .req import RequestDescriptor, Transport, TransportResponse, AiohttpTransport

# API client
from .apis import ApiClient, form_batch_request

logging.getLogger(__name__).addHandler(logging.NullHandler())
