"""
aiohttp implementation of the Transport contract.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..core.cancellation import CancelToken
from ..core.exceptions import TransportError
from .transport import RequestDescriptor, Transport, TransportResponse

logger = logging.getLogger(__name__)


class AiohttpTransport(Transport):
    """
    Transport backed by an aiohttp.ClientSession.

    Features:
    - Form-encoded request bodies
    - Per-request timeout clamped to the cancel token's deadline
    - Network failures surfaced as TransportError
    - Closes the session only if it created it
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None,
                 timeout: float = 30.0):
        if not timeout > 0:
            raise ValueError("timeout must be > 0")
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _timeout_for(self, cancel: Optional[CancelToken]) -> aiohttp.ClientTimeout:
        total = self.timeout
        if cancel is not None:
            remaining = cancel.remaining()
            if remaining is not None:
                # aiohttp treats a zero timeout as "no timeout"
                total = max(min(total, remaining), 0.001)
        return aiohttp.ClientTimeout(total=total)

    async def send(self, request: RequestDescriptor,
                   cancel: Optional[CancelToken] = None) -> TransportResponse:
        session = self._get_session()
        logger.debug("%s %s", request.method, request.url)
        try:
            async with session.request(
                request.method,
                request.url,
                data=request.data or None,
                headers=request.headers or None,
                timeout=self._timeout_for(cancel),
            ) as response:
                body = await response.read()
                return TransportResponse(
                    status=response.status,
                    body=body,
                    headers=dict(response.headers),
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(
                f"{request.method} {request.url} failed: {type(exc).__name__}",
                original_error=exc,
            ) from exc

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "AiohttpTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
