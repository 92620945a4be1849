"""
Transport contract consumed by the request executor.

The executor never builds HTTP requests itself: it hands an opaque
RequestDescriptor to a Transport and gets a status code and body back.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ..core.cancellation import CancelToken


@dataclass
class RequestDescriptor:
    """One request, as built by an operation encoder."""
    url: str
    method: str = "POST"
    data: Dict[str, str] = field(default_factory=dict)    # Form fields
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class TransportResponse:
    """Raw outcome of one exchange that produced an HTTP response."""
    status: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(ABC):
    """Performs a single network exchange."""

    @abstractmethod
    async def send(self, request: RequestDescriptor,
                   cancel: Optional[CancelToken] = None) -> TransportResponse:
        """
        Send request once, without retrying.

        Args:
            request: Request to send
            cancel: Signal whose deadline the exchange should honour

        Returns:
            TransportResponse for any HTTP status, error statuses included

        Raises:
            TransportError: If no response could be obtained
        """

    async def close(self) -> None:
        """Release resources held by the transport."""
