"""WebSocket server for the data hub.

    WS   /         <-> JSON objects, rebroadcast to every other peer
    GET  /health   -> {"status": "ok", "peers": N}
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, WebSocket
from pydantic import BaseModel

from camrelay.hub.broadcast import DEFAULT_MAX_PENDING, DEFAULT_SEND_TIMEOUT, DataHub

logger = logging.getLogger(__name__)


class DataHealthResponse(BaseModel):
    status: str = "ok"
    peers: int = 0
    messages_relayed: int = 0


def create_app(
    hub: DataHub | None = None,
    send_timeout: float = DEFAULT_SEND_TIMEOUT,
    max_pending: int = DEFAULT_MAX_PENDING,
) -> FastAPI:
    """Create the data hub application.

    Args:
        hub: Optional pre-configured DataHub (for testing).
        send_timeout: Seconds a write to one peer may take before it is dropped.
        max_pending: Outbox size per peer.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Data hub started")
        yield
        logger.info("Data hub stopped (%d peers connected)", len(app.state.hub))
        app.state.hub.close_all()

    app = FastAPI(
        title="camrelay Data",
        description="Rebroadcasts JSON messages between connected devices and browsers",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.hub = (
        hub if hub is not None
        else DataHub(send_timeout=send_timeout, max_pending=max_pending)
    )

    @app.get("/health")
    async def health_check() -> DataHealthResponse:
        h: DataHub = app.state.hub
        return DataHealthResponse(
            status="ok",
            peers=len(h),
            messages_relayed=h.messages_relayed,
        )

    @app.websocket("/")
    async def data_endpoint(websocket: WebSocket) -> None:
        h: DataHub = app.state.hub
        peer = h.add(websocket)
        try:
            await websocket.accept()
            logger.info("Client connected to get data (peer %d)", peer.peer_id)
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await h.handle_message(peer, raw)
        finally:
            h.remove(peer)
            logger.info("Client disconnected from data (peer %d)", peer.peer_id)

    return app


def main(host: str = "0.0.0.0", port: int = 3001) -> None:
    """Run the data hub server standalone."""
    app = create_app()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
