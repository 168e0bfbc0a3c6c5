"""Data hub for camrelay.

A single shared broadcast set: JSON objects from any peer are relayed to
every other connected peer.

Public API:
    DataHub -- Broadcast set and relay logic
    Peer -- A connected client
    PeerWriteError -- Raised when a peer cannot be written to
"""

from camrelay.hub.broadcast import DataHub, Peer, PeerWriteError

__all__ = ["DataHub", "Peer", "PeerWriteError"]
