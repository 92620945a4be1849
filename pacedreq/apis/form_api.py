"""
Token-authenticated form API client.

Remote APIs in this family take every call as a form-encoded POST to a
single endpoint, selecting the operation with a "content" field and
authenticating with a "token" field. This module encodes such calls and
runs them through the resilient request engine.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..core.backoff import ExecutionConfig
from ..core.cancellation import CancelToken
from ..core.exceptions import RequestError
from ..core.executors import BatchExecutor, RequestExecutor
from ..core.rate_limiter import RateLimiter, RateLimitConfig, TokenBucketRateLimiter
from ..req.aiohttp_transport import AiohttpTransport
from ..req.transport import RequestDescriptor, Transport

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


def encode_form_request(base_url: str, token: str, content: str = "",
                        params: Optional[Mapping[str, Any]] = None) -> RequestDescriptor:
    """
    Build the form POST for one API call.

    Args:
        base_url: API endpoint URL
        token: API token
        content: Operation selector; omitted when empty
        params: Extra form fields; empty or None values are dropped

    Returns:
        RequestDescriptor ready for a transport
    """
    form: Dict[str, str] = {"token": token, "returnFormat": "json"}
    if content:
        form["content"] = content
    for key, value in (params or {}).items():
        if value is None or value == "":
            continue
        form[key] = str(value)
    return RequestDescriptor(url=base_url, method="POST", data=form,
                             headers=dict(DEFAULT_HEADERS))


class ApiClient:
    """
    Client for a token-authenticated form API.

    Features:
    - One rate limiter per client, shared by all of its requests
    - Retries with exponential backoff through RequestExecutor
    - Owns (and closes) its transport unless one is supplied
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        transport: Optional[Transport] = None,
        rate_limiter: Optional[RateLimiter] = None,
        config: Optional[ExecutionConfig] = None,
        rate_limit_config: Optional[RateLimitConfig] = None,
        **executor_kwargs
    ):
        """
        Initialize API client.

        Args:
            base_url: API endpoint URL
            token: API token
            transport: Transport to use; an AiohttpTransport by default
            rate_limiter: Rate limiter to share; built from rate_limit_config
                when omitted
            config: Retry configuration
            rate_limit_config: Settings for the default rate limiter
            **executor_kwargs: Additional RequestExecutor parameters
        """
        if not base_url:
            raise ValueError("base_url is required")
        if not token:
            raise ValueError("token is required")

        self.base_url = base_url
        self.token = token
        self._owns_transport = transport is None
        self.transport = transport or AiohttpTransport()
        if rate_limiter is None:
            rate_limiter = TokenBucketRateLimiter(rate_limit_config)
        self.executor = RequestExecutor(
            self.transport,
            rate_limiter=rate_limiter,
            config=config,
            **executor_kwargs
        )

    @property
    def rate_limiter(self) -> RateLimiter:
        return self.executor.rate_limiter

    def build_request(self, content: str = "",
                      params: Optional[Mapping[str, Any]] = None) -> RequestDescriptor:
        return encode_form_request(self.base_url, self.token, content, params)

    async def request(self, content: str = "", params: Optional[Mapping[str, Any]] = None,
                      cancel: Optional[CancelToken] = None) -> bytes:
        """
        Make one API call with retries and rate limiting.

        Args:
            content: Operation selector (e.g. "record", "metadata")
            params: Extra form fields
            cancel: Cancellation signal or deadline for the whole call

        Returns:
            bytes: Raw response body

        Raises:
            RequestError: On fatal errors, cancellation or exhausted retries
        """
        return await self.executor.execute(self.build_request(content, params), cancel)

    async def close(self) -> None:
        if self._owns_transport:
            await self.transport.close()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def form_batch_request(
    base_url: str,
    token: str,
    calls: Sequence[Tuple[str, Optional[Mapping[str, Any]]]],
    max_workers: int = 5,
    show_progress: bool = True,
    **client_kwargs
) -> List[Tuple[int, Union[bytes, RequestError]]]:
    """
    High-level function running many API calls concurrently.

    Args:
        base_url: API endpoint URL
        token: API token
        calls: (content, params) pairs
        max_workers: Maximum concurrent workers
        show_progress: Whether to display a progress bar
        **client_kwargs: Additional ApiClient parameters

    Returns:
        List of (index, body or RequestError) tuples sorted by index

    Example:
        results = form_batch_request(
            "https://example.org/api/", "TOKEN",
            [("record", {"records": "1"}), ("metadata", None)],
        )
    """
    async def _async_batch_request():
        async with ApiClient(base_url, token, **client_kwargs) as client:
            batch = BatchExecutor(client.executor, max_workers=max_workers,
                                  show_progress=show_progress)
            requests = [client.build_request(content, params) for content, params in calls]
            logger.info("Running %d API calls against %s with %d workers",
                        len(requests), base_url, max_workers)
            return await batch.execute(requests)

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_async_batch_request())

    # Already inside an event loop: run on a fresh loop in a worker thread
    import concurrent.futures
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, _async_batch_request()).result()
