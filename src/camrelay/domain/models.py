"""Core domain models for the camrelay system.

These models represent the data flowing through the two relay channels:
connection lifecycle states, the error notification sent to stream
clients, and the opaque JSON message passed between data hub peers.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, RootModel, ValidationError


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ConnectionState(str, enum.Enum):
    """Lifecycle of a stream relay client connection."""

    ACTIVE = "active"
    CLOSING = "closing"  # Cancellation issued, fetch still unwinding
    CLOSED = "closed"


class PeerState(str, enum.Enum):
    """Membership of a data hub peer in the broadcast set."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


# ---------------------------------------------------------------------------
# Stream relay models
# ---------------------------------------------------------------------------


class ErrorNotification(BaseModel):
    """Structured error pushed to a stream client when the camera fails.

    Serializes to ``{"error": true, "message": "..."}``.
    """

    error: bool = True
    message: str


# ---------------------------------------------------------------------------
# Data hub models
# ---------------------------------------------------------------------------


class Message(RootModel[dict[str, Any]]):
    """An arbitrary JSON object exchanged between data hub peers.

    The hub never looks inside the payload. The only requirement is that
    the text parses as a JSON object; it is re-serialized compactly before
    being rebroadcast.
    """

    def to_json(self) -> str:
        return self.model_dump_json()


class MessageParseError(Exception):
    """Raised when an inbound data hub payload is not a JSON object."""

    def __init__(self, message: str, raw: str | bytes = "") -> None:
        super().__init__(message)
        self.raw = raw


def parse_message(raw: str | bytes) -> Message:
    """Parse raw peer input into a Message.

    Args:
        raw: Text frame, or binary frame holding UTF-8 encoded JSON.

    Raises:
        MessageParseError: If the payload is not valid UTF-8 JSON, or is
            valid JSON but not an object.
    """
    try:
        return Message.model_validate_json(raw)
    except ValidationError as e:
        raise MessageParseError(str(e), raw=raw) from e
