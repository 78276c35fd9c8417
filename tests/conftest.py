"""
Test Configuration
==================

Pytest fixtures and test doubles for PixelSocket.

The FakeWebSocket / FakeConnector pair stands in for websockets.connect
so the connection state machine can be driven frame by frame without a
server.
"""

import asyncio
import time

import msgpack
import pytest
import zstandard
from websockets.exceptions import ConnectionClosedOK


PNG_MAGIC = b"\x89PNG\r\n\x1a\n"

_CLOSED = object()


class FakeWebSocket:
    """In-memory WebSocket connection driven by the test."""

    def __init__(self) -> None:
        self.sent = []
        self.close_code = None
        self.close_reason = None
        self.closed = False
        self.fail_sends = False
        self._incoming = asyncio.Queue()

    def feed(self, message) -> None:
        """Deliver an inbound frame to the client."""
        self._incoming.put_nowait(message)

    def server_close(self, code: int = 1000, reason: str = "") -> None:
        """Simulate the server closing the connection."""
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._incoming.put_nowait(_CLOSED)

    async def send(self, data) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        if self.fail_sends:
            raise OSError("Broken pipe")
        self.sent.append(data)

    async def close(self) -> None:
        self.server_close(1000, "")

    async def __aiter__(self):
        while True:
            message = await self._incoming.get()
            if message is _CLOSED:
                return
            yield message


class FakeConnector:
    """Replacement for websockets.connect that hands out FakeWebSockets."""

    def __init__(self) -> None:
        self.sockets = []
        self.calls = 0
        self.kwargs = []
        self.fail = False

    async def __call__(self, url, **kwargs):
        self.calls += 1
        self.kwargs.append(kwargs)
        if self.fail:
            raise OSError("Connection refused")
        websocket = FakeWebSocket()
        self.sockets.append(websocket)
        return websocket

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


def encode_frame(obj) -> bytes:
    """Encode an object the way a Pixel Socket server does."""
    packed = msgpack.packb(obj, use_bin_type=True)
    return zstandard.ZstdCompressor().compress(packed)


@pytest.fixture
def connector():
    """Provide a fresh FakeConnector."""
    return FakeConnector()


@pytest.fixture
def make_frame():
    """Provide the zstd + MessagePack frame encoder."""
    return encode_frame


@pytest.fixture
def png_bytes():
    """100 bytes that sniff as a PNG."""
    return PNG_MAGIC + bytes(range(92))


@pytest.fixture
def notification_tree(png_bytes):
    """Provide a decoded primary-format notification."""
    return {
        "type": "notification-from-pixel-socket",
        "payload": {
            "jobId": "abc",
            "blobData": png_bytes,
            "imageLength": 100,
            "fileExtension": "png",
            "timestamp": 1000,
        },
    }


@pytest.fixture
def eventually():
    """Provide an async poller: await eventually(lambda: cond)."""

    async def _eventually(predicate, timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.005)

    return _eventually
