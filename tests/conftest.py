import asyncio

import pytest

from fakes import FakeTransport
from pacedreq.core.rate_limiter import RateLimitConfig, TokenBucketRateLimiter
from pacedreq.req.transport import RequestDescriptor


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def request_descriptor():
    return RequestDescriptor(url="https://api.example.org/", data={"content": "record"})


@pytest.fixture
def fast_limiter():
    return TokenBucketRateLimiter(RateLimitConfig(rate=1000.0, burst=100))


@pytest.fixture
def run():
    return asyncio.run
