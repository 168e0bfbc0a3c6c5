"""Shared test fixtures for the camrelay test suite.

Provides sample JPEG payloads, an MJPEG multipart body builder, a fake
upstream fetch and mock WebSockets used across unit tests.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable
from unittest.mock import AsyncMock

import pytest
from fastapi.websockets import WebSocket, WebSocketState

BOUNDARY = "123456789000000000000987654321"


# ---------------------------------------------------------------------------
# Frame Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def jpeg_frames() -> list[bytes]:
    """Three small, distinct payloads framed by JPEG SOI/EOI markers."""
    return [
        b"\xff\xd8\xff\xe0" + f"frame-{n}".encode() + bytes(range(n * 10, n * 10 + 40)) + b"\xff\xd9"
        for n in (1, 2, 3)
    ]


@pytest.fixture
def mjpeg_body() -> Callable[..., bytes]:
    """Build a multipart/x-mixed-replace body the way an ESP32 camera sends it."""

    def build(frames: list[bytes], content_length: bool = True) -> bytes:
        parts = []
        for frame in frames:
            header = f"\r\n--{BOUNDARY}\r\nContent-Type: image/jpeg\r\n"
            if content_length:
                header += f"Content-Length: {len(frame)}\r\n"
            header += "X-Timestamp: 1700000000.000000\r\n\r\n"
            parts.append(header.encode() + frame)
        return b"".join(parts)

    return build


# ---------------------------------------------------------------------------
# Upstream Fixtures
# ---------------------------------------------------------------------------


class FakeFetch:
    """Stand-in for UpstreamFetch that yields preset frames.

    Args:
        frames: Frames to yield, in order.
        error: Exception raised after the frames, if any.
        hold: Block forever after the last frame (a live camera).
    """

    def __init__(
        self,
        frames: list[bytes] | None = None,
        error: Exception | None = None,
        hold: bool = False,
    ) -> None:
        self._preset = list(frames or [])
        self._error = error
        self._hold = hold
        self.started = asyncio.Event()
        self.closed = False
        self.close_calls = 0

    async def frames(self) -> AsyncIterator[bytes]:
        self.started.set()
        for frame in self._preset:
            yield frame
        if self._error is not None:
            raise self._error
        if self._hold:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True
        self.close_calls += 1


@pytest.fixture
def make_fetch() -> type[FakeFetch]:
    """The FakeFetch class, for building fetches with custom behaviour."""
    return FakeFetch


# ---------------------------------------------------------------------------
# WebSocket Fixtures
# ---------------------------------------------------------------------------


def _connected_websocket() -> AsyncMock:
    ws = AsyncMock(spec=WebSocket)
    ws.client_state = WebSocketState.CONNECTED
    ws.application_state = WebSocketState.CONNECTED
    return ws


@pytest.fixture
def mock_websocket() -> AsyncMock:
    """A connected WebSocket with send/receive stubbed."""
    return _connected_websocket()


@pytest.fixture
def websocket_factory() -> Callable[[], AsyncMock]:
    """Builds additional connected mock WebSockets."""
    return _connected_websocket
