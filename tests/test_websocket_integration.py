"""
WebSocket Integration Tests
===========================

End-to-end tests against a real local websockets server.
"""

import json

import pytest
import websockets

from pixel_socket.config import ClientConfig
from pixel_socket.models.state import ConnectionState
from pixel_socket.stream.client import PixelSocket


class FakePixelServer:
    """Minimal Pixel Socket server: records control frames, pushes frames."""

    def __init__(self, frames, close_after_send: bool = False) -> None:
        self.frames = frames
        self.close_after_send = close_after_send
        self.received = []
        self.connections = 0

    async def handler(self, websocket) -> None:
        self.connections += 1
        subscribe = await websocket.recv()
        self.received.append(json.loads(subscribe))

        for frame in self.frames:
            await websocket.send(frame)

        if self.close_after_send:
            await websocket.close(1001, "restarting")
            return

        async for message in websocket:
            self.received.append(json.loads(message))


@pytest.mark.asyncio
async def test_receive_and_save(tmp_path, make_frame, notification_tree, png_bytes, eventually):
    """A real server frame ends up saved as 1000_abc.png."""
    server = FakePixelServer([make_frame(notification_tree)])

    async with websockets.serve(server.handler, "127.0.0.1", 0) as ws_server:
        port = ws_server.sockets[0].getsockname()[1]
        client = PixelSocket(ClientConfig(
            url=f"ws://127.0.0.1:{port}",
            save_directory=tmp_path,
            keepalive_interval=0.05,
        ))
        try:
            await client.connect()
            assert await client.wait_until_connected(timeout=5.0)

            await eventually(lambda: client.get_stats().images_received == 1, timeout=5.0)
            await eventually(
                lambda: {"type": "ping"} in server.received, timeout=5.0
            )

            assert server.received[0] == {"type": "subscribe", "mode": "all"}
            assert client.get_stats().bytes_received == 100
            assert (tmp_path / "1000_abc.png").read_bytes() == png_bytes
        finally:
            await client.disconnect()

    assert client.state is ConnectionState.CLOSED
    assert not client.is_connected()


@pytest.mark.asyncio
async def test_reconnects_after_server_close(tmp_path, eventually):
    """A server-initiated close is reported and followed by a reconnect."""
    server = FakePixelServer([], close_after_send=True)
    closes = []

    async with websockets.serve(server.handler, "127.0.0.1", 0) as ws_server:
        port = ws_server.sockets[0].getsockname()[1]
        client = PixelSocket(
            ClientConfig(
                url=f"ws://127.0.0.1:{port}",
                save_directory=None,
                reconnect_delay=0.05,
            ),
            on_disconnect=lambda code, reason: closes.append((code, reason)),
        )
        try:
            await client.connect()
            await eventually(lambda: server.connections >= 2, timeout=5.0)

            assert closes[0] == (1001, "restarting")
        finally:
            await client.disconnect()

    assert client.state is ConnectionState.CLOSED


@pytest.mark.asyncio
async def test_unreachable_server_keeps_retrying(eventually):
    """Connection refusals never raise out of connect() and keep retrying."""
    errors = []
    client = PixelSocket(
        ClientConfig(
            url="ws://127.0.0.1:9",
            save_directory=None,
            reconnect_delay=0.01,
            open_timeout=1.0,
        ),
        on_error=errors.append,
    )
    try:
        await client.connect()
        await eventually(lambda: client.get_stats().reconnect_attempts >= 3, timeout=5.0)

        assert errors
        assert not client.is_connected()
    finally:
        await client.disconnect()
