"""Upstream HTTP fetch of the camera's MJPEG stream.

Each stream relay client owns exactly one UpstreamFetch. The fetch opens
its own httpx client, streams the camera response body through an
MjpegDecoder and yields complete frames.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from camrelay.mjpeg.decoder import DEFAULT_MAX_FRAME_SIZE, MjpegDecoder

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_CHUNK_SIZE = 4096


class UpstreamError(Exception):
    """Raised when the camera stream cannot be fetched."""

    def __init__(self, message: str, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class UpstreamConnectError(UpstreamError):
    """Bad URL, DNS, connect, timeout or HTTP status failure reaching the camera."""


class UpstreamReadError(UpstreamError):
    """The camera connection failed while the body was streaming."""


class UpstreamFetch:
    """An outbound GET to the camera, bound to a single client connection.

    Usage::

        fetch = UpstreamFetch("http://camera/mjpeg/1")
        try:
            async for frame in fetch.frames():
                await send(frame)
        finally:
            await fetch.aclose()
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._decoder = MjpegDecoder(max_frame_size=max_frame_size)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._response: httpx.Response | None = None
        self._closed = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_closed(self) -> bool:
        """Whether the upstream socket has been released."""
        return self._closed

    async def frames(self) -> AsyncIterator[bytes]:
        """Connect to the camera and yield decoded frames in stream order.

        Raises:
            UpstreamConnectError: If the camera cannot be reached or answers
                with a non-success status.
            UpstreamReadError: If the connection breaks mid-stream.
        """
        if self._closed:
            raise UpstreamConnectError("Fetch already closed", url=self._url)

        await self._open()
        assert self._response is not None

        try:
            async for chunk in self._response.aiter_bytes(self._chunk_size):
                for frame in self._decoder.feed(chunk):
                    yield frame
        except httpx.HTTPError as e:
            raise UpstreamReadError(str(e) or type(e).__name__, url=self._url) from e

        logger.info("Camera stream %s ended", self._url)

    async def _open(self) -> None:
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        try:
            request = self._client.build_request("GET", self._url)
            self._response = await self._client.send(request, stream=True)
            self._response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            await self.aclose()
            raise UpstreamConnectError(str(e) or type(e).__name__, url=self._url) from e
        logger.debug("Connected to camera stream %s", self._url)

    async def aclose(self) -> None:
        """Release the response and client. Safe to call multiple times."""
        self._closed = True
        if self._response is not None:
            await self._response.aclose()
            self._response = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
