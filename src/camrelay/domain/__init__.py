"""Domain models for camrelay.

This package contains the core data structures, enumerations, and value
objects shared by the stream relay and the data hub. All models use
Pydantic v2 for validation and serialization.
"""

from camrelay.domain.models import (
    ConnectionState,
    ErrorNotification,
    Message,
    MessageParseError,
    PeerState,
    parse_message,
)

__all__ = [
    "ConnectionState",
    "ErrorNotification",
    "Message",
    "MessageParseError",
    "PeerState",
    "parse_message",
]
