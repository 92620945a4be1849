"""
Error taxonomy and failure classification for pacedreq.

Every failure the request engine can surface is a RequestError carrying an
ErrorKind. Whether a kind is worth retrying is decided by is_retryable(),
a pure function of the kind, so the taxonomy stays closed and testable.
"""

import asyncio
import json
from enum import Enum
from typing import Any, Callable, Optional

import aiohttp


class ErrorKind(Enum):
    """Closed set of failure kinds."""
    TRANSIENT = "transient"              # No response: connection, DNS, timeout, I/O
    INVALID_REQUEST = "invalid_request"  # 400, or 2xx with an embedded body error
    UNAUTHORIZED = "unauthorized"        # 401
    FORBIDDEN = "forbidden"              # 403
    NOT_FOUND = "not_found"              # 404
    RATE_LIMITED = "rate_limited"        # 429
    SERVER_ERROR = "server_error"        # 500, 502, 503, 504
    UNKNOWN = "unknown"                  # Any other non-2xx
    CANCELLED = "cancelled"              # Caller cancellation or deadline


_RETRYABLE_KINDS = frozenset({
    ErrorKind.TRANSIENT,
    ErrorKind.RATE_LIMITED,
    ErrorKind.SERVER_ERROR,
})

_STATUS_KINDS = {
    400: ErrorKind.INVALID_REQUEST,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    429: ErrorKind.RATE_LIMITED,
    500: ErrorKind.SERVER_ERROR,
    502: ErrorKind.SERVER_ERROR,
    503: ErrorKind.SERVER_ERROR,
    504: ErrorKind.SERVER_ERROR,
}


def is_retryable(kind: ErrorKind) -> bool:
    """Return True if a failure of this kind may succeed when re-attempted."""
    return kind in _RETRYABLE_KINDS


class PacedReqError(Exception):
    """Base exception class for all pacedreq errors."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None,
                 **kwargs):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.metadata = kwargs

    def __str__(self):
        base_msg = super().__str__()
        if self.original_error:
            return f"{base_msg} (caused by: {self.original_error})"
        return base_msg


class RequestError(PacedReqError):
    """
    Terminal failure of a request.

    Carries enough structure (kind, status code, message) for callers to
    branch on the cause without parsing the message text.
    """

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN,
                 status_code: Optional[int] = None,
                 original_error: Optional[BaseException] = None, **kwargs):
        super().__init__(message, original_error=original_error, **kwargs)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind)

    def __str__(self):
        status = self.status_code if self.status_code is not None else "-"
        base_msg = f"{self.kind.value} ({status}): {self.message}"
        if self.original_error:
            return f"{base_msg} (caused by: {self.original_error})"
        return base_msg

    def __repr__(self):
        return (f"RequestError(kind={self.kind.name}, status_code={self.status_code}, "
                f"message={self.message!r})")


class TransportError(PacedReqError):
    """
    Raised by transports when no HTTP response was obtained.

    This covers refused connections, DNS failures, socket timeouts and
    broken reads of the response body.
    """


# Exceptions meaning "the exchange never produced a response"
TRANSPORT_EXCEPTIONS = (
    TransportError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    TimeoutError,
    OSError,
)


def _decode_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None


def detect_body_error(body: bytes) -> Optional[str]:
    """
    Return the embedded error message of a successful response, if any.

    The remote API reports some semantic failures as a JSON object with a
    non-empty "error" string while still answering 200. Anything else,
    including non-JSON bodies and JSON arrays, carries no error.
    """
    data = _decode_json(body) if body else None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str) and error:
            return error
    return None


def extract_error_message(body: bytes) -> str:
    """Pick the most useful message out of an error response body."""
    data = _decode_json(body) if body else None
    if isinstance(data, dict):
        for key in ("error", "message"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return str(body or "")


def classify(
    transport_error: Optional[BaseException] = None,
    status_code: Optional[int] = None,
    body: bytes = b"",
    body_error_detector: Callable[[bytes], Optional[str]] = detect_body_error,
) -> Optional[RequestError]:
    """
    Classify the outcome of one network exchange.

    Args:
        transport_error: Exception raised when no response was obtained
        status_code: HTTP status of the response, if there was one
        body: Raw response body
        body_error_detector: Finds an embedded error in a 2xx body

    Returns:
        RequestError describing the failure, or None for a clean success
    """
    if transport_error is not None:
        if isinstance(transport_error, RequestError):
            return transport_error
        if isinstance(transport_error, TRANSPORT_EXCEPTIONS):
            return RequestError(
                f"transport failure: {type(transport_error).__name__}",
                kind=ErrorKind.TRANSIENT,
                original_error=transport_error,
            )
        # Not an I/O failure: a bug or an unexpected exception in the transport
        return RequestError(
            f"unexpected transport exception: {type(transport_error).__name__}",
            kind=ErrorKind.UNKNOWN,
            original_error=transport_error,
        )

    if status_code is None:
        return RequestError("no status code reported by transport", kind=ErrorKind.UNKNOWN)

    if 200 <= status_code < 300:
        embedded = body_error_detector(body)
        if embedded:
            return RequestError(embedded, kind=ErrorKind.INVALID_REQUEST,
                                status_code=status_code)
        return None

    kind = _STATUS_KINDS.get(status_code, ErrorKind.UNKNOWN)
    return RequestError(extract_error_message(body), kind=kind, status_code=status_code)
