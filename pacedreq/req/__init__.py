"""
Transport layer: the single network exchange the executor delegates to.
"""

from .transport import RequestDescriptor, Transport, TransportResponse
from .aiohttp_transport import AiohttpTransport

__all__ = [
    'RequestDescriptor',
    'Transport',
    'TransportResponse',
    'AiohttpTransport',
]
