"""
Cooperative cancellation for request execution.

A CancelToken is passed explicitly through every suspension point of a
request (backoff sleep, rate limiter wait, network exchange). It fires
either when cancel() is called or when its deadline passes.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Optional

from .exceptions import ErrorKind, RequestError

logger = logging.getLogger(__name__)


class CancelToken:
    """
    Cancellation signal with an optional deadline.

    The deadline is expressed on the time.monotonic() clock. A token is
    meant to be used from a single event loop.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self.deadline: Optional[float] = None
        if timeout is not None:
            self.deadline = time.monotonic() + timeout

    @classmethod
    def with_deadline(cls, deadline: float) -> "CancelToken":
        """Create a token expiring at the given time.monotonic() timestamp."""
        token = cls()
        token.deadline = deadline
        return token

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Fire the token. Later calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()
            logger.debug("Cancel token fired: %s", reason)

    @property
    def deadline_exceeded(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.deadline_exceeded

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return self._reason
        if self.deadline_exceeded:
            return "deadline exceeded"
        return None

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline (never negative), or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def error(self) -> RequestError:
        """Build the terminal error reported for this cancellation."""
        # Only two ways to fire: an explicit cancel() or the deadline
        by_caller = self._event.is_set()
        return RequestError(
            self._reason if by_caller else "deadline exceeded",
            kind=ErrorKind.CANCELLED,
            deadline_exceeded=not by_caller,
        )

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise self.error()

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait up to timeout seconds for the token to fire.

        Returns:
            bool: True if the token fired (or the deadline passed), False if
            the timeout elapsed first
        """
        if self.cancelled:
            return True

        hits_deadline = False
        remaining = self.remaining()
        if remaining is not None and (timeout is None or remaining <= timeout):
            timeout = remaining
            hits_deadline = True

        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            # The loop clock may wake us marginally before the deadline
            return hits_deadline or self.cancelled
        return True

    async def sleep(self, delay: float) -> None:
        """Sleep for delay seconds, raising a CANCELLED RequestError if the token fires."""
        if await self.wait(max(0.0, delay)):
            raise self.error()

    async def guard(self, awaitable: Awaitable[Any]) -> Any:
        """
        Await awaitable, abandoning it as soon as the token fires.

        The abandoned operation is cancelled and drained before the
        CANCELLED RequestError is raised.
        """
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise self.error()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise
        waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise self.error()

    def __repr__(self):
        return f"CancelToken(cancelled={self.cancelled}, deadline={self.deadline})"
