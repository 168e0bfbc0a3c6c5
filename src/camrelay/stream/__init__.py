"""Camera stream relay for camrelay.

Opens one upstream MJPEG fetch per WebSocket client and forwards decoded
frames as binary messages.

Public API:
    StreamRelay -- Per-client connection manager
    ClientConnection -- One subscriber and its upstream fetch
    UpstreamFetch -- httpx-based camera fetch
"""

from camrelay.stream.relay import ClientConnection, StreamRelay
from camrelay.stream.upstream import (
    UpstreamConnectError,
    UpstreamError,
    UpstreamFetch,
    UpstreamReadError,
)

__all__ = [
    "ClientConnection",
    "StreamRelay",
    "UpstreamConnectError",
    "UpstreamError",
    "UpstreamFetch",
    "UpstreamReadError",
]
