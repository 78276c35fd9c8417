"""
PixelSocket
===========

Streaming client for Pixel Socket image-generation servers.

The client keeps one WebSocket connection open to the server, decodes
every image notification it pushes (zstd-compressed MessagePack, or the
older JSON/base64 text formats), saves the image to disk, and tracks
liveness and throughput statistics.

Components:
    - stream: WebSocket client, frame codec, extractor, image sink
    - models: Notification payloads, connection state and stats
    - config: Settings loading (YAML + environment)
    - main: FastAPI status service around a running client

Example:
    from pixel_socket import ClientConfig, PixelSocket

    client = PixelSocket(ClientConfig(url="ws://localhost:8080/ws"))
    await client.connect()
"""

__version__ = "0.1.0"

from pixel_socket.config import ClientConfig
from pixel_socket.errors import (
    DecodeError,
    PersistenceError,
    PixelSocketError,
    TransportError,
    ValidationError,
)
from pixel_socket.models import (
    ConnectionState,
    ConnectionStats,
    ImageMetadata,
    LegacyImageMessage,
    NotificationPayload,
)
from pixel_socket.stream import PixelSocket

__all__ = [
    "__version__",
    "ClientConfig",
    "PixelSocket",
    "ConnectionState",
    "ConnectionStats",
    "NotificationPayload",
    "ImageMetadata",
    "LegacyImageMessage",
    "PixelSocketError",
    "TransportError",
    "DecodeError",
    "ValidationError",
    "PersistenceError",
]
