"""Per-client MJPEG relay.

Every WebSocket client of the stream endpoint gets its own
ClientConnection, which owns one UpstreamFetch to the camera. Frames are
forwarded one at a time as binary messages while the client is open and
dropped otherwise; nothing is queued. Closing the connection cancels the
fetch and releases its socket.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator, Callable, Protocol

import httpx
from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from camrelay.domain.models import ConnectionState, ErrorNotification
from camrelay.mjpeg.decoder import DEFAULT_MAX_FRAME_SIZE
from camrelay.stream.upstream import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_TIMEOUT,
    UpstreamError,
    UpstreamFetch,
)

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    """What a ClientConnection needs from its upstream fetch."""

    def frames(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


class ClientConnection:
    """One stream subscriber and the upstream fetch it owns."""

    def __init__(self, websocket: WebSocket, fetch: FrameSource) -> None:
        self._websocket = websocket
        self._fetch: FrameSource | None = fetch
        self._state = ConnectionState.ACTIVE
        self._task: asyncio.Task[None] | None = None
        self.frames_sent: int = 0
        self.frames_dropped: int = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def fetch(self) -> FrameSource | None:
        """The owned upstream fetch, or None once the connection is closed."""
        return self._fetch

    @property
    def is_open(self) -> bool:
        """Whether the client can currently be written to."""
        return (
            self._state is ConnectionState.ACTIVE
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    def start(self) -> None:
        """Start pulling frames from the camera."""
        if self._task is None:
            self._task = asyncio.create_task(self._pump())

    async def _pump(self) -> None:
        fetch = self._fetch
        assert fetch is not None
        try:
            async for frame in fetch.frames():
                await self.send_frame(frame)
        except UpstreamError as e:
            logger.error("Error camera: %s", e)
            await self.send_error(f"Error camera: {e}")
        finally:
            await fetch.aclose()

    async def send_frame(self, frame: bytes) -> bool:
        """Forward one frame, or drop it if the client is not writable."""
        if not self.is_open:
            self.frames_dropped += 1
            return False
        try:
            await self._websocket.send_bytes(frame)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug("Dropped frame, client not writable: %s", e)
            self.frames_dropped += 1
            return False
        self.frames_sent += 1
        return True

    async def send_error(self, message: str) -> None:
        """Notify the client of an upstream failure without closing it."""
        if not self.is_open:
            return
        notification = ErrorNotification(message=message)
        try:
            await self._websocket.send_text(notification.model_dump_json())
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug("Could not deliver camera error to client: %s", e)

    async def wait_for_disconnect(self) -> None:
        """Block until the client goes away. Client messages are ignored."""
        while True:
            message = await self._websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    def cancel(self) -> None:
        """Synchronously cancel the upstream fetch task."""
        if self._state is ConnectionState.ACTIVE:
            self._state = ConnectionState.CLOSING
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def close(self) -> None:
        """Cancel the fetch, wait for it to release the socket, drop it."""
        self.cancel()
        if self._task is not None:
            with suppress(asyncio.CancelledError):
                await self._task
        if self._fetch is not None:
            await self._fetch.aclose()
            self._fetch = None
        self._state = ConnectionState.CLOSED


class StreamRelay:
    """Creates and tracks a ClientConnection per stream subscriber.

    Usage::

        relay = StreamRelay(camera_url="http://camera/mjpeg/1")
        async with relay.connect(websocket) as connection:
            await connection.wait_for_disconnect()
    """

    def __init__(
        self,
        camera_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
        fetch_factory: Callable[[], FrameSource] | None = None,
    ) -> None:
        self._camera_url = camera_url
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._max_frame_size = max_frame_size
        self._transport = transport
        self._fetch_factory = fetch_factory
        self._connections: set[ClientConnection] = set()

    @property
    def camera_url(self) -> str:
        return self._camera_url

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    def new_fetch(self) -> FrameSource:
        if self._fetch_factory is not None:
            return self._fetch_factory()
        return UpstreamFetch(
            self._camera_url,
            timeout=self._timeout,
            chunk_size=self._chunk_size,
            max_frame_size=self._max_frame_size,
            transport=self._transport,
        )

    @asynccontextmanager
    async def connect(self, websocket: WebSocket) -> AsyncIterator[ClientConnection]:
        """Bind a new upstream fetch to a client for the duration of the block."""
        connection = ClientConnection(websocket, self.new_fetch())
        self._connections.add(connection)
        connection.start()
        try:
            yield connection
        finally:
            connection.cancel()
            self._connections.discard(connection)
            await connection.close()

    async def close_all(self) -> None:
        """Close every open client connection (server shutdown)."""
        connections = list(self._connections)
        self._connections.clear()
        for connection in connections:
            await connection.close()
