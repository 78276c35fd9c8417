"""
Pixel Socket Client
===================

Async WebSocket client that receives generated images from a Pixel
Socket server.

This client:
    - Connects to the server and subscribes to the full image stream
    - Decodes every frame (zstd + MessagePack, or the legacy JSON/base64
      text formats) into a typed message
    - Saves images to the configured directory
    - Sends an application-level ping every 20 seconds while open
    - Reconnects automatically, falling back to a long fixed delay once
      the configured number of attempts is exceeded, and never gives up
      on its own

State Machine:
    IDLE/CLOSED → CONNECTING → OPEN → CLOSED → (reconnect) CONNECTING ...
    disconnect() forces CLOSED from any state and stops reconnecting.

Example:
    from pixel_socket import ClientConfig, PixelSocket

    async def on_notification(payload):
        print(f"Job {payload.job_id}: {payload.image_length} bytes")

    client = PixelSocket(
        ClientConfig(url="ws://localhost:8080/ws"),
        on_notification=on_notification,
    )
    await client.connect()
    ...
    await client.disconnect()

Design Rules:
    - The WebSocket handle is owned by this class alone
    - Frames are processed one at a time in arrival order; decoding and
      file writes run in worker threads so the event loop keeps reading
    - A bad frame is reported through on_error and dropped; it never
      closes the connection
    - Only an invalid URL raises out of connect(); every other failure
      is reported through on_error
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException
from websockets.uri import parse_uri

from pixel_socket.config import ClientConfig
from pixel_socket.errors import (
    DecodeError,
    PersistenceError,
    PixelSocketError,
    TransportError,
)
from pixel_socket.models.notification import LegacyImageMessage, NotificationPayload
from pixel_socket.models.state import ConnectionState
from pixel_socket.models.stats import ConnectionStats
from pixel_socket.stream.codec import ZstdEngine, decode_binary, decode_text
from pixel_socket.stream.extractor import extract, from_raw_image
from pixel_socket.stream.sink import ImageSink


logger = logging.getLogger(__name__)


SUBSCRIBE_MESSAGE = json.dumps({"type": "subscribe", "mode": "all"})
PING_MESSAGE = json.dumps({"type": "ping"})

# Close code reported when the connection dropped or never opened
ABNORMAL_CLOSURE = 1006

Callback = Callable[..., Union[None, Awaitable[None]]]
Connector = Callable[..., Awaitable[Any]]


def compute_reconnect_delay(
    attempt: int,
    base_delay: float,
    max_attempts: int,
    fallback_delay: float,
) -> float:
    """
    Delay before the given reconnect attempt.

    Attempts 1..max_attempts wait base_delay; every later attempt waits
    fallback_delay.
    """
    if attempt <= max_attempts:
        return base_delay
    return fallback_delay


class PixelSocket:
    """
    Long-lived WebSocket client for a Pixel Socket image stream.

    Callbacks may be plain functions or coroutine functions. Exceptions
    they raise are logged and passed to on_error.

    Attributes:
        config: Connection configuration
        state: Current lifecycle state

    Args:
        config: Connection configuration (defaults for every field)
        on_notification: Called with each NotificationPayload
        on_image: Called with (bytes, ImageMetadata | None) for legacy frames
        on_connect: Called after the subscription handshake is sent
        on_disconnect: Called with (code, reason) when the transport closes
        on_error: Called with every reported exception
        connector: Coroutine function opening the transport
            (defaults to websockets.connect)
        engine: zstd engine (defaults to the process-wide shared engine)
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        on_notification: Optional[Callback] = None,
        on_image: Optional[Callback] = None,
        on_connect: Optional[Callback] = None,
        on_disconnect: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        connector: Optional[Connector] = None,
        engine: Optional[ZstdEngine] = None,
    ) -> None:
        self.config = config or ClientConfig()

        self._on_notification = on_notification
        self._on_image = on_image
        self._on_connect = on_connect
        self._on_disconnect = on_disconnect
        self._on_error = on_error

        self._connector: Connector = connector or websockets.connect
        self._engine = engine
        self._sink = ImageSink(self.config.save_directory)

        # State
        self._state = ConnectionState.IDLE
        self._websocket: Optional[Any] = None
        self._should_reconnect: bool = True
        self._opened = asyncio.Event()

        # Tasks
        self._session_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

        self._stats = ConnectionStats()

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        """Current lifecycle state."""
        return self._state

    @property
    def sink(self) -> ImageSink:
        """Image sink used for persistence."""
        return self._sink

    def is_connected(self) -> bool:
        """Whether the connection is currently open."""
        return self._stats.is_connected

    def get_stats(self) -> ConnectionStats:
        """Return a snapshot of the connection statistics."""
        return self._stats.copy()

    async def connect(self) -> None:
        """
        Start (or resume) the connection lifecycle.

        Returns once the session task is started; the handshake completes
        in the background. Use wait_until_connected() to wait for it.
        No-op while already connecting or open.

        Raises:
            TransportError: If the configured URL is not a valid
                WebSocket URL
        """
        if self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.OPEN,
            ConnectionState.CLOSING,
        ):
            logger.debug(f"connect() ignored in state {self._state.value}")
            return

        try:
            parse_uri(self.config.url)
        except (InvalidURI, ValueError) as e:
            error = TransportError(f"Invalid WebSocket URL {self.config.url!r}: {e}")
            logger.error(str(error))
            await self._report_error(error)
            raise error from e

        self._should_reconnect = True
        self._cancel_reconnect()

        logger.info(f"Connecting to: {self.config.url}")
        self._state = ConnectionState.CONNECTING
        self._session_task = asyncio.create_task(
            self._run_session(),
            name="pixel_socket_session",
        )

    async def disconnect(self) -> None:
        """
        Stop the lifecycle: close the transport and cancel all timers.

        Idempotent and callable from any state, including from inside a
        callback. Reconnects scheduled before the call never fire.
        """
        self._should_reconnect = False
        self._cancel_reconnect()
        self._cancel_keepalive()
        self._stats.is_connected = False
        self._opened.clear()

        websocket = self._websocket
        session = self._session_task
        own_session = session is asyncio.current_task()

        if websocket is not None:
            logger.info("Disconnecting...")
            self._state = ConnectionState.CLOSING
            try:
                await websocket.close()
            except (WebSocketException, OSError) as e:
                logger.warning(f"Error while closing connection: {e}")
        elif session is not None and not session.done() and not own_session:
            # Still in the opening handshake
            session.cancel()

        if session is not None and not session.done() and not own_session:
            done, _ = await asyncio.wait(
                {session}, timeout=self.config.close_timeout
            )
            if session not in done:
                logger.warning("Session did not finish after close, cancelling")
                session.cancel()
            try:
                await session
            except asyncio.CancelledError:
                pass

        if not own_session:
            self._session_task = None
            self._websocket = None
        self._state = ConnectionState.CLOSED

    async def send(self, data: Union[str, bytes]) -> None:
        """
        Send a text or binary frame.

        Raises:
            TransportError: If not connected or the send fails
        """
        websocket = self._websocket
        if websocket is None or self._state is not ConnectionState.OPEN:
            raise TransportError("WebSocket is not connected")

        try:
            await websocket.send(data)
        except (ConnectionClosed, WebSocketException, OSError) as e:
            raise TransportError(f"Send failed: {e}") from e

    async def wait_until_connected(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the connection is open.

        Returns:
            True if open, False if the timeout elapsed first
        """
        try:
            await asyncio.wait_for(self._opened.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def __aenter__(self) -> "PixelSocket":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        """Async context manager exit."""
        await self.disconnect()

    # =========================================================================
    # Session
    # =========================================================================

    async def _run_session(self) -> None:
        """Open the transport and consume frames until it closes."""
        try:
            websocket = await self._connector(
                self.config.url,
                open_timeout=self.config.open_timeout,
                close_timeout=self.config.close_timeout,
                ping_interval=None,
                max_size=self.config.max_message_size,
            )
        except Exception as e:
            # Any connector failure counts as a failed open
            logger.error(f"Connection to {self.config.url} failed: {e}")
            await self._report_error(
                TransportError(f"Failed to connect to {self.config.url}: {e}")
            )
            await self._handle_close(ABNORMAL_CLOSURE, str(e))
            return

        self._websocket = websocket

        try:
            await self._handle_open(websocket)

            async for message in websocket:
                await self._handle_message(message)

        except ConnectionClosed as e:
            logger.warning(f"Connection closed with error: {e}")

        finally:
            self._websocket = None

        code = getattr(websocket, "close_code", None)
        reason = getattr(websocket, "close_reason", None)
        await self._handle_close(
            code if code is not None else ABNORMAL_CLOSURE,
            reason or "",
        )

    async def _handle_open(self, websocket: Any) -> None:
        """CONNECTING → OPEN side effects, in order."""
        self._state = ConnectionState.OPEN
        self._stats.mark_open()
        logger.info(f"Connected to {self.config.url}")

        try:
            await websocket.send(SUBSCRIBE_MESSAGE)
        except (ConnectionClosed, WebSocketException, OSError) as e:
            logger.error(f"Failed to send subscription: {e}")
            await self._report_error(TransportError(f"Failed to subscribe: {e}"))

        self._start_keepalive()
        await self._invoke("on_connect", self._on_connect)
        self._opened.set()

    async def _handle_close(self, code: int, reason: str) -> None:
        """Transport closed (or never opened): notify and maybe reconnect."""
        self._state = ConnectionState.CLOSED
        self._stats.is_connected = False
        self._opened.clear()
        self._cancel_keepalive()

        logger.info(f"Disconnected: {code} - {reason}")
        await self._invoke("on_disconnect", self._on_disconnect, code, reason)

        # on_disconnect may already have called connect() or disconnect()
        if (
            self._state is ConnectionState.CLOSED
            and self._should_reconnect
            and self.config.auto_reconnect
        ):
            self._schedule_reconnect()

    # =========================================================================
    # Message Pipeline
    # =========================================================================

    async def _handle_message(self, message: Union[str, bytes]) -> None:
        """Decode, extract, account, persist, and deliver one frame."""
        try:
            if isinstance(message, str):
                decoded = await asyncio.to_thread(decode_text, message)
                if isinstance(decoded, bytes):
                    result = from_raw_image(decoded)
                else:
                    result = extract(decoded)
            else:
                tree = await asyncio.to_thread(
                    decode_binary, bytes(message), self._engine
                )
                result = extract(tree)
        except PixelSocketError as e:
            logger.error(f"Failed to process message: {e}")
            await self._report_error(e)
            return
        except Exception as e:
            logger.error(f"Unexpected error processing message: {e}")
            await self._report_error(
                DecodeError(f"Unexpected error processing message: {e}")
            )
            return

        if result is None:
            return

        if isinstance(result, NotificationPayload):
            await self._process_notification(result)
        else:
            await self._process_image(result)

    async def _process_notification(self, payload: NotificationPayload) -> None:
        if payload.image_length is not None:
            nbytes = payload.image_length
        elif payload.blob_data is not None:
            nbytes = len(payload.blob_data)
        else:
            nbytes = 0
        self._stats.record_image(nbytes)
        logger.info(
            f"Received image #{self._stats.images_received} "
            f"({nbytes} bytes, job {payload.job_id})"
        )

        try:
            await asyncio.to_thread(self._sink.persist_notification, payload)
        except PersistenceError as e:
            logger.error(f"Error saving image: {e}")
            await self._report_error(e)

        await self._invoke("on_notification", self._on_notification, payload)

    async def _process_image(self, message: LegacyImageMessage) -> None:
        nbytes = len(message.image)
        self._stats.record_image(nbytes)
        logger.info(
            f"Received image #{self._stats.images_received} ({nbytes} bytes)"
        )

        try:
            await asyncio.to_thread(
                self._sink.persist_image, message.image, message.metadata
            )
        except PersistenceError as e:
            logger.error(f"Error saving image: {e}")
            await self._report_error(e)

        await self._invoke("on_image", self._on_image, message.image, message.metadata)

    # =========================================================================
    # Timers
    # =========================================================================

    def _schedule_reconnect(self) -> None:
        """Arm the reconnect timer, replacing any pending one."""
        self._cancel_reconnect()

        self._stats.reconnect_attempts += 1
        attempt = self._stats.reconnect_attempts
        max_attempts = self.config.max_reconnect_attempts

        delay = compute_reconnect_delay(
            attempt,
            self.config.reconnect_delay,
            max_attempts,
            self.config.fallback_reconnect_delay,
        )

        if attempt <= max_attempts:
            attempt_text = f"attempt {attempt}/{max_attempts}"
        else:
            attempt_text = f"attempt {attempt} (ongoing)"
        logger.info(f"Reconnecting in {delay:.1f}s ({attempt_text})")

        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay),
            name="pixel_socket_reconnect",
        )

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None

        if not self._should_reconnect:
            logger.debug("Reconnect suppressed after disconnect()")
            return

        try:
            await self.connect()
        except PixelSocketError as e:
            logger.error(f"Reconnection failed: {e}")
            if self._should_reconnect and self.config.auto_reconnect:
                self._schedule_reconnect()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _start_keepalive(self) -> None:
        self._cancel_keepalive()
        self._keepalive_task = asyncio.create_task(
            self._keepalive_loop(),
            name="pixel_socket_keepalive",
        )

    async def _keepalive_loop(self) -> None:
        """Send a ping frame every keepalive_interval while open."""
        while True:
            await asyncio.sleep(self.config.keepalive_interval)

            websocket = self._websocket
            if websocket is None or self._state is not ConnectionState.OPEN:
                continue

            try:
                await websocket.send(PING_MESSAGE)
                logger.debug("Sent ping")
            except (ConnectionClosed, WebSocketException, OSError) as e:
                # The close signal, not a failed ping, ends the connection
                logger.warning(f"Error sending ping: {e}")
                await self._report_error(TransportError(f"Keepalive ping failed: {e}"))

    def _cancel_keepalive(self) -> None:
        task = self._keepalive_task
        self._keepalive_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # =========================================================================
    # Callbacks
    # =========================================================================

    async def _invoke(self, name: str, callback: Optional[Callback], *args: Any) -> None:
        """Run a user callback; failures are logged and reported."""
        if callback is None:
            return

        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"{name} callback raised: {e}")
            await self._report_error(e)

    async def _report_error(self, error: Exception) -> None:
        """Deliver an error to on_error; its own failures are only logged."""
        if self._on_error is None:
            return

        try:
            result = self._on_error(error)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"on_error callback raised: {e}")
