"""Incremental MJPEG (multipart/x-mixed-replace) frame decoder.

An MJPEG camera answers a GET with an endless multipart body::

    --boundary\\r\\n
    Content-Type: image/jpeg\\r\\n
    Content-Length: 12345\\r\\n
    \\r\\n
    <JPEG bytes, FF D8 ... FF D9>\\r\\n
    --boundary\\r\\n
    ...

The decoder is fed raw chunks as they arrive from the network and emits
one complete JPEG payload per part. When a part declares a
Content-Length, exactly that many bytes are taken as the frame;
otherwise the frame runs from the JPEG start-of-image marker to the
following end-of-image marker. Part headers and boundary lines are
discarded.
"""

from __future__ import annotations

import logging
import re
from typing import AsyncIterable, AsyncIterator

logger = logging.getLogger(__name__)

SOI = b"\xff\xd8"
EOI = b"\xff\xd9"
HEADER_TERMINATOR = b"\r\n\r\n"

DEFAULT_MAX_FRAME_SIZE = 8 * 1024 * 1024

_CONTENT_LENGTH_RE = re.compile(rb"content-length\s*:\s*(\d+)", re.IGNORECASE)


class MjpegDecoder:
    """Splits a continuous MJPEG byte stream into frames.

    Usage::

        decoder = MjpegDecoder()
        for chunk in chunks:
            for frame in decoder.feed(chunk):
                handle(frame)
    """

    def __init__(self, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> None:
        self._max_frame_size = max_frame_size
        self._buffer = bytearray()
        # Body length announced by the current part's headers, if any
        self._content_length: int | None = None
        self.frames_decoded: int = 0

    @property
    def buffered(self) -> int:
        """Number of bytes held while waiting for the rest of a frame."""
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self._content_length = None

    def feed(self, chunk: bytes) -> list[bytes]:
        """Append a chunk and return every frame it completes, in order."""
        self._buffer.extend(chunk)
        frames: list[bytes] = []
        while True:
            frame = self._next_frame()
            if frame is None:
                break
            frames.append(frame)
            self.frames_decoded += 1

        if len(self._buffer) > self._max_frame_size:
            logger.warning(
                "Discarding %d buffered bytes with no complete frame (limit %d)",
                len(self._buffer), self._max_frame_size,
            )
            self.reset()
        return frames

    def _next_frame(self) -> bytes | None:
        buf = self._buffer

        while self._content_length is None:
            soi = buf.find(SOI)
            header_end = buf.find(HEADER_TERMINATOR)
            if header_end == -1 or (soi != -1 and soi < header_end):
                break
            match = _CONTENT_LENGTH_RE.search(buf, 0, header_end)
            del buf[: header_end + len(HEADER_TERMINATOR)]
            if match and int(match.group(1)) > 0:
                self._content_length = int(match.group(1))

        if self._content_length is not None:
            if len(buf) < self._content_length:
                return None
            frame = bytes(buf[: self._content_length])
            del buf[: self._content_length]
            self._content_length = None
            return frame

        soi = buf.find(SOI)
        if soi == -1:
            return None
        eoi = buf.find(EOI, soi + len(SOI))
        if eoi == -1:
            # Drop whatever preceded the image so the buffer holds one frame
            if soi:
                del buf[:soi]
            return None
        end = eoi + len(EOI)
        frame = bytes(buf[soi:end])
        del buf[:end]
        return frame


async def decode_stream(
    chunks: AsyncIterable[bytes],
    decoder: MjpegDecoder | None = None,
) -> AsyncIterator[bytes]:
    """Yield frames decoded from an async iterable of raw chunks."""
    if decoder is None:
        decoder = MjpegDecoder()
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
