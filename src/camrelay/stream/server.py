"""WebSocket server for the camera stream relay.

    WS   /         -> binary JPEG frames, or {"error": true, "message": ...}
    GET  /health   -> {"status": "ok", "camera_url": ..., "clients": N}

Each WebSocket client triggers its own GET to the camera; the camera
connection is released as soon as the client disconnects.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import httpx
import uvicorn
from fastapi import FastAPI, WebSocket
from pydantic import BaseModel

from camrelay.config.settings import DEFAULT_CAMERA_URL
from camrelay.mjpeg.decoder import DEFAULT_MAX_FRAME_SIZE
from camrelay.stream.relay import FrameSource, StreamRelay
from camrelay.stream.upstream import DEFAULT_CHUNK_SIZE, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


class StreamHealthResponse(BaseModel):
    status: str = "ok"
    camera_url: str = ""
    clients: int = 0


def create_app(
    camera_url: str = DEFAULT_CAMERA_URL,
    timeout: float = DEFAULT_TIMEOUT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
    relay: StreamRelay | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    fetch_factory: Callable[[], FrameSource] | None = None,
) -> FastAPI:
    """Create the stream relay application.

    Args:
        camera_url: MJPEG source every client is relayed from.
        timeout: Upstream connect/read timeout in seconds.
        chunk_size: Read size for the upstream response body.
        max_frame_size: Decoder buffer limit before bytes are discarded.
        relay: Optional pre-configured StreamRelay (for testing).
        transport: Optional httpx transport for the upstream (for testing).
        fetch_factory: Optional callable building the per-client fetch
            (for testing).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Stream relay started (camera=%s)", app.state.relay.camera_url)
        yield
        await app.state.relay.close_all()
        logger.info("Stream relay stopped")

    app = FastAPI(
        title="camrelay Stream",
        description="Relays an MJPEG camera to WebSocket clients frame by frame",
        version="0.1.0",
        lifespan=lifespan,
    )
    if relay is None:
        relay = StreamRelay(
            camera_url=camera_url,
            timeout=timeout,
            chunk_size=chunk_size,
            max_frame_size=max_frame_size,
            transport=transport,
            fetch_factory=fetch_factory,
        )
    app.state.relay = relay

    @app.get("/health")
    async def health_check() -> StreamHealthResponse:
        r: StreamRelay = app.state.relay
        return StreamHealthResponse(
            status="ok",
            camera_url=r.camera_url,
            clients=r.active_connections,
        )

    @app.websocket("/")
    async def stream_endpoint(websocket: WebSocket) -> None:
        r: StreamRelay = app.state.relay
        await websocket.accept()
        logger.info("Client connected to get image (%s)", websocket.client)
        async with r.connect(websocket) as connection:
            await connection.wait_for_disconnect()
        logger.info(
            "Client disconnected from image stream (%s, sent=%d, dropped=%d)",
            websocket.client, connection.frames_sent, connection.frames_dropped,
        )

    return app


def main(host: str = "0.0.0.0", port: int = 3000, camera_url: str = DEFAULT_CAMERA_URL) -> None:
    """Run the stream relay server standalone."""
    app = create_app(camera_url=camera_url)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
