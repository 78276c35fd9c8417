"""
Stream Module
=============

WebSocket connection and frame decoding components.

This module provides the ingestion layer for PixelSocket:
    - PixelSocket: WebSocket client with keepalive and reconnection
    - ZstdEngine / decode_binary / decode_text: Frame codec
    - extract / sniff_format: Typed payload extraction
    - ImageSink: Image persistence

Example:
    from pixel_socket.stream import PixelSocket

    client = PixelSocket(on_notification=print)
    await client.connect()
"""

from pixel_socket.stream.codec import (
    ZstdEngine,
    decode_binary,
    decode_text,
    default_engine,
)
from pixel_socket.stream.extractor import extract, sniff_format
from pixel_socket.stream.sink import ImageSink
from pixel_socket.stream.client import PixelSocket, compute_reconnect_delay


__all__ = [
    "PixelSocket",
    "compute_reconnect_delay",
    "ZstdEngine",
    "default_engine",
    "decode_binary",
    "decode_text",
    "extract",
    "sniff_format",
    "ImageSink",
]
