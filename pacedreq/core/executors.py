"""
Request execution with retries, adaptive rate limiting and cancellation.

RequestExecutor runs the attempt loop for a single request. BatchExecutor
drives many requests concurrently through one RequestExecutor, so they all
share its rate limiter.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from tqdm import tqdm

from .backoff import Backoff, ExecutionConfig
from .cancellation import CancelToken
from .exceptions import ErrorKind, RequestError, classify, detect_body_error
from .rate_limiter import RateLimiter, TokenBucketRateLimiter
from ..req.transport import RequestDescriptor, Transport

logger = logging.getLogger(__name__)


class AttemptOutcome(Enum):
    """Outcome of a single attempt."""
    PENDING = "pending"
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"
    CANCELLED = "cancelled"


@dataclass
class Attempt:
    """Bookkeeping for one attempt of an execute() call."""
    index: int
    delay: float = 0.0
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    error: Optional[RequestError] = None
    sent: bool = False      # Reached the transport


@dataclass
class ExecutionResult:
    """Successful response body plus the attempts it took."""
    body: bytes
    attempts: List[Attempt] = field(default_factory=list)


class RequestExecutor:
    """
    Executes requests with retries and adaptive pacing.

    Features:
    - Exponential backoff with symmetric jitter between attempts
    - Shared rate limiter consulted before every attempt
    - Rate limiter damped on every 429 response
    - Fatal errors surfaced on first occurrence
    - Cancellation honoured at every wait
    """

    def __init__(
        self,
        transport: Transport,
        rate_limiter: Optional[RateLimiter] = None,
        config: Optional[ExecutionConfig] = None,
        body_error_detector: Callable[[bytes], Optional[str]] = detect_body_error,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the request executor.

        Args:
            transport: Performs one network exchange per attempt
            rate_limiter: Shared pacing gate; a private TokenBucketRateLimiter
                with default settings is created when omitted
            config: Retry configuration
            body_error_detector: Finds an embedded error in a 2xx body
            rng: Random source for backoff jitter
        """
        self.transport = transport
        self.rate_limiter = rate_limiter if rate_limiter is not None else TokenBucketRateLimiter()
        self.config = config or ExecutionConfig()
        self.body_error_detector = body_error_detector
        self.backoff = Backoff(self.config, rng)

    def backoff_delay(self, attempt: int) -> float:
        """Jittered delay to wait before the given attempt (attempt >= 1)."""
        return self.backoff.delay(attempt)

    async def execute(self, request: RequestDescriptor,
                      cancel: Optional[CancelToken] = None) -> bytes:
        """
        Execute request, retrying retryable failures.

        Returns:
            bytes: Body of the successful response

        Raises:
            RequestError: Fatal error, cancellation, or the last retryable
                error once the retry budget is spent
        """
        result = await self.execute_detailed(request, cancel)
        return result.body

    async def execute_detailed(self, request: RequestDescriptor,
                               cancel: Optional[CancelToken] = None) -> ExecutionResult:
        """Like execute(), but also return the attempts that were made."""
        cancel = cancel or CancelToken()
        attempts: List[Attempt] = []
        last_error: Optional[RequestError] = None
        total_attempts = self.config.max_retries + 1

        for index in range(total_attempts):
            attempt = Attempt(index=index)
            attempts.append(attempt)

            # Waiting
            if index > 0:
                attempt.delay = self.backoff_delay(index)
                logger.debug("Backing off %.3fs before attempt %d/%d",
                             attempt.delay, index + 1, total_attempts)
                if await cancel.wait(attempt.delay):
                    raise self._cancelled(cancel, attempt, attempts)

            # Limiting
            if not await self.rate_limiter.acquire(cancel):
                raise self._cancelled(cancel, attempt, attempts)

            # Sending
            body, error = await self._send_once(request, cancel, attempt)
            if attempt.outcome is AttemptOutcome.SUCCESS:
                return ExecutionResult(body=body, attempts=attempts)
            if attempt.outcome is AttemptOutcome.CANCELLED:
                raise self._finish(error, attempts)

            if not error.retryable:
                attempt.outcome = AttemptOutcome.FATAL_FAILURE
                logger.error("Request to %s failed on attempt %d: %s",
                             request.url, index + 1, error)
                raise self._finish(error, attempts)

            attempt.outcome = AttemptOutcome.RETRYABLE_FAILURE
            last_error = error
            logger.warning("Retryable error on attempt %d/%d for %s: %s",
                           index + 1, total_attempts, request.url, error)

            if error.kind is ErrorKind.RATE_LIMITED:
                self._dampen_rate()

        logger.error("Retries exhausted after %d attempts for %s", total_attempts, request.url)
        raise self._finish(last_error, attempts)

    async def _send_once(
        self, request: RequestDescriptor, cancel: CancelToken, attempt: Attempt
    ) -> Tuple[Optional[bytes], Optional[RequestError]]:
        """Perform one exchange; sets attempt.outcome on success or cancellation."""
        attempt.sent = True
        started = time.perf_counter()
        try:
            response = await cancel.guard(self.transport.send(request, cancel))
        except RequestError as exc:
            if exc.kind is ErrorKind.CANCELLED:
                attempt.outcome = AttemptOutcome.CANCELLED
            attempt.error = exc
            return None, exc
        except Exception as exc:
            # A deadline that fired mid-exchange is a cancellation, not a network failure
            if cancel.cancelled:
                attempt.outcome = AttemptOutcome.CANCELLED
                attempt.error = cancel.error()
            else:
                attempt.error = classify(exc)
            return None, attempt.error

        logger.debug("Attempt %d answered %d in %.1fms", attempt.index + 1,
                     response.status, (time.perf_counter() - started) * 1000)
        error = classify(None, response.status, response.body, self.body_error_detector)
        if error is None:
            attempt.outcome = AttemptOutcome.SUCCESS
            return response.body, None
        attempt.error = error
        return None, error

    def _dampen_rate(self) -> None:
        current = self.rate_limiter.get_rate()
        self.rate_limiter.set_rate(current * self.config.rate_limit_damping)
        logger.info("Rate limited by server; pacing reduced to %.3f req/s",
                    self.rate_limiter.get_rate())

    def _cancelled(self, cancel: CancelToken, attempt: Attempt,
                   attempts: List[Attempt]) -> RequestError:
        attempt.outcome = AttemptOutcome.CANCELLED
        attempt.error = cancel.error()
        return self._finish(attempt.error, attempts)

    @staticmethod
    def _finish(error: RequestError, attempts: List[Attempt]) -> RequestError:
        error.metadata["attempts"] = sum(1 for a in attempts if a.sent)
        error.metadata["attempt_log"] = attempts
        return error


class BatchExecutor:
    """
    Runs many requests concurrently through one RequestExecutor.

    Features:
    - Fixed pool of worker coroutines draining a queue
    - All requests pace against the executor's shared rate limiter
    - Failures collected per request instead of aborting the batch
    - Progress bar showing completion and the current rate
    """

    def __init__(
        self,
        executor: RequestExecutor,
        max_workers: int = 5,
        result_processor: Optional[Callable] = None,
        show_progress: bool = True,
    ):
        """
        Initialize batch executor.

        Args:
            executor: Executor used for every request
            max_workers: Number of concurrent worker coroutines
            result_processor: Optional function applied to the sorted results
            show_progress: Whether to display a tqdm progress bar
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.executor = executor
        self.max_workers = max_workers
        self.result_processor = result_processor
        self.show_progress = show_progress

        self.progress_bar: Optional[tqdm] = None
        self.completed_tasks = 0
        self.total_tasks = 0

    def _init_progress_bar(self, total_tasks: int) -> None:
        self.total_tasks = total_tasks
        self.completed_tasks = 0
        if self.show_progress:
            self.progress_bar = tqdm(total=total_tasks, desc="Requests", ncols=100)

    def _update_progress_bar(self) -> None:
        self.completed_tasks += 1
        if self.progress_bar:
            self.progress_bar.update(1)
            self.progress_bar.set_postfix(
                rate=f"{self.executor.rate_limiter.get_rate():.2f}/s", refresh=False
            )

    def _close_progress_bar(self) -> None:
        if self.progress_bar:
            self.progress_bar.close()
            self.progress_bar = None

    async def execute(
        self,
        requests: Sequence[RequestDescriptor],
        cancel: Optional[CancelToken] = None,
    ) -> List[Tuple[int, Union[bytes, RequestError]]]:
        """
        Execute all requests concurrently.

        Args:
            requests: Requests to run
            cancel: Cancels the whole batch; requests not yet started are
                reported as CANCELLED

        Returns:
            List of (index, body or RequestError) tuples sorted by index
        """
        cancel = cancel or CancelToken()
        self._init_progress_bar(len(requests))

        try:
            queue: asyncio.Queue = asyncio.Queue()
            for i, request in enumerate(requests):
                queue.put_nowait((i, request))

            workers = [
                asyncio.create_task(self._worker_coroutine(queue, cancel))
                for _ in range(min(self.max_workers, max(1, len(requests))))
            ]
            worker_results = await asyncio.gather(*workers)

            results: List[Tuple[int, Any]] = []
            for batch in worker_results:
                results.extend(batch)
            results.sort(key=lambda x: x[0])

            if self.result_processor:
                results = self.result_processor(results)
            return results
        finally:
            self._close_progress_bar()

    async def _worker_coroutine(self, queue: asyncio.Queue,
                                cancel: CancelToken) -> List[Tuple[int, Any]]:
        """Individual worker coroutine."""
        worker_results = []

        while True:
            try:
                index, request = queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            if cancel.cancelled:
                worker_results.append((index, cancel.error()))
            else:
                try:
                    body = await self.executor.execute(request, cancel)
                    worker_results.append((index, body))
                except RequestError as exc:
                    worker_results.append((index, exc))

            self._update_progress_bar()
            queue.task_done()

        return worker_results

    def run(self, requests: Sequence[RequestDescriptor]) -> List[Tuple[int, Union[bytes, RequestError]]]:
        """Synchronous entry point."""
        return asyncio.run(self.execute(requests))
