"""Broadcast set for the data hub.

Every connected peer is a member of one shared broadcast set. A JSON
object received from any peer is re-serialized and queued for all other
open peers. Each peer has its own bounded outbox drained by a writer
task, so a slow or stalled peer never holds up the sender or the rest of
the set. Peers that fail, time out or overflow their outbox are dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Callable

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from camrelay.domain.models import Message, MessageParseError, PeerState, parse_message

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT = 10.0
DEFAULT_MAX_PENDING = 64


class PeerWriteError(Exception):
    """Raised when a message cannot be written to a peer."""

    def __init__(self, message: str, peer_id: int = 0) -> None:
        super().__init__(message)
        self.peer_id = peer_id


class Peer:
    """A data hub client, its membership state and its outbox.

    Args:
        websocket: The accepted client socket.
        send_timeout: Seconds a single write may take before the peer is
            considered stalled.
        max_pending: Messages that may wait in the outbox.
        on_failure: Called with the peer and the error when its writer
            gives up.
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        websocket: WebSocket,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        max_pending: int = DEFAULT_MAX_PENDING,
        on_failure: Callable[[Peer, PeerWriteError], None] | None = None,
    ) -> None:
        self.peer_id = next(self._ids)
        self._websocket = websocket
        self._send_timeout = send_timeout
        self._outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=max_pending)
        self._writer: asyncio.Task[None] | None = None
        self._on_failure = on_failure
        self.state = PeerState.CONNECTED

    def __repr__(self) -> str:
        return f"Peer(id={self.peer_id}, state={self.state.value})"

    @property
    def is_open(self) -> bool:
        return (
            self.state is PeerState.CONNECTED
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    async def send(self, text: str) -> None:
        """Send a text message to this peer directly.

        Raises:
            PeerWriteError: If the underlying WebSocket is gone.
        """
        try:
            await self._websocket.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise PeerWriteError(f"Write to peer {self.peer_id} failed: {e}", self.peer_id) from e

    def enqueue(self, text: str) -> None:
        """Queue a message for this peer's writer without waiting on it.

        Raises:
            PeerWriteError: If the peer is gone or its outbox is full.
        """
        if self.state is not PeerState.CONNECTED:
            raise PeerWriteError(f"Peer {self.peer_id} is disconnected", self.peer_id)
        try:
            self._outbox.put_nowait(text)
        except asyncio.QueueFull:
            raise PeerWriteError(
                f"Peer {self.peer_id} outbox full ({self._outbox.maxsize} pending)",
                self.peer_id,
            ) from None
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    async def flush(self) -> None:
        """Wait until everything queued so far has been written or discarded."""
        if self._writer is not None and not self._writer.done():
            await self._outbox.join()

    def close(self) -> None:
        """Stop the writer. Pending messages are discarded."""
        self.state = PeerState.DISCONNECTED
        writer = self._writer
        if writer is not None and not writer.done() and writer is not asyncio.current_task():
            writer.cancel()
        self._discard_pending()

    async def _write_loop(self) -> None:
        try:
            while True:
                text = await self._outbox.get()
                try:
                    await asyncio.wait_for(self.send(text), self._send_timeout)
                except asyncio.TimeoutError:
                    raise PeerWriteError(
                        f"Write to peer {self.peer_id} timed out after {self._send_timeout}s",
                        self.peer_id,
                    ) from None
                finally:
                    self._outbox.task_done()
        except PeerWriteError as e:
            self.state = PeerState.DISCONNECTED
            self._discard_pending()
            if self._on_failure is not None:
                self._on_failure(self, e)
        except asyncio.CancelledError:
            self._discard_pending()
            raise

    def _discard_pending(self) -> None:
        while True:
            try:
                self._outbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._outbox.task_done()


class DataHub:
    """The shared broadcast set and its relay logic.

    Usage::

        hub = DataHub()
        peer = hub.add(websocket)
        try:
            async for text in websocket.iter_text():
                await hub.handle_message(peer, text)
        finally:
            hub.remove(peer)
    """

    def __init__(
        self,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        # dict keeps insertion order for broadcast
        self._peers: dict[int, Peer] = {}
        self._send_timeout = send_timeout
        self._max_pending = max_pending
        self.messages_relayed: int = 0
        self.parse_errors: int = 0

    def __len__(self) -> int:
        return len(self._peers)

    @property
    def peers(self) -> list[Peer]:
        return list(self._peers.values())

    def add(self, websocket: WebSocket) -> Peer:
        peer = Peer(
            websocket,
            send_timeout=self._send_timeout,
            max_pending=self._max_pending,
            on_failure=self._drop,
        )
        self._peers[peer.peer_id] = peer
        logger.debug("Peer %d joined (%d connected)", peer.peer_id, len(self._peers))
        return peer

    def remove(self, peer: Peer) -> None:
        """Take a peer out of the broadcast set. Safe to call twice."""
        peer.close()
        if self._peers.pop(peer.peer_id, None) is not None:
            logger.debug("Peer %d left (%d connected)", peer.peer_id, len(self._peers))

    def close_all(self) -> None:
        for peer in list(self._peers.values()):
            self.remove(peer)

    async def flush(self) -> None:
        """Wait for every peer's outbox to drain."""
        await asyncio.gather(*(peer.flush() for peer in list(self._peers.values())))

    async def handle_message(self, sender: Peer, raw: str | bytes) -> int:
        """Validate a peer's message and rebroadcast it to everyone else.

        Returns:
            The number of peers the message was queued for. Zero when the
            payload does not parse.
        """
        try:
            message = parse_message(raw)
        except MessageParseError as e:
            self.parse_errors += 1
            logger.error("Error parse JSON from peer %d: %s", sender.peer_id, e)
            return 0

        logger.debug("Data from peer %d: %s", sender.peer_id, message.root)
        return await self.broadcast(message, exclude=sender)

    async def broadcast(self, message: Message, exclude: Peer | None = None) -> int:
        """Queue a message for every open peer except ``exclude``.

        Never waits on a peer's socket; delivery happens in each peer's
        writer task.
        """
        text = message.to_json()
        targets = [
            peer for peer in list(self._peers.values())
            if peer is not exclude and peer.is_open
        ]
        if not targets:
            return 0

        queued = 0
        for peer in targets:
            try:
                peer.enqueue(text)
            except PeerWriteError as e:
                self._drop(peer, e)
            else:
                queued += 1
        self.messages_relayed += 1
        return queued

    def _drop(self, peer: Peer, error: PeerWriteError) -> None:
        logger.info("Dropping peer %d: %s", peer.peer_id, error)
        self.remove(peer)
