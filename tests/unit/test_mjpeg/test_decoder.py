"""Tests for the incremental MJPEG frame decoder."""

from __future__ import annotations

from typing import AsyncIterator, Callable

import pytest

from camrelay.mjpeg.decoder import EOI, SOI, MjpegDecoder, decode_stream


class TestDecoderWithContentLength:
    def test_single_frame(self, jpeg_frames: list[bytes], mjpeg_body: Callable[..., bytes]) -> None:
        decoder = MjpegDecoder()
        assert decoder.feed(mjpeg_body(jpeg_frames[:1])) == jpeg_frames[:1]

    def test_frames_in_stream_order(
        self, jpeg_frames: list[bytes], mjpeg_body: Callable[..., bytes]
    ) -> None:
        decoder = MjpegDecoder()
        assert decoder.feed(mjpeg_body(jpeg_frames)) == jpeg_frames
        assert decoder.frames_decoded == 3

    def test_byte_at_a_time(self, jpeg_frames: list[bytes], mjpeg_body: Callable[..., bytes]) -> None:
        body = mjpeg_body(jpeg_frames)
        decoder = MjpegDecoder()
        frames: list[bytes] = []
        for i in range(len(body)):
            frames.extend(decoder.feed(body[i : i + 1]))
        assert frames == jpeg_frames

    def test_declared_length_wins_over_markers(self, mjpeg_body: Callable[..., bytes]) -> None:
        # An embedded thumbnail ends with its own EOI before the real one
        frame = SOI + b"exif" + SOI + b"thumb" + EOI + b"main-image" + EOI
        decoder = MjpegDecoder()
        assert decoder.feed(mjpeg_body([frame])) == [frame]

    def test_incomplete_frame_is_held(
        self, jpeg_frames: list[bytes], mjpeg_body: Callable[..., bytes]
    ) -> None:
        body = mjpeg_body(jpeg_frames[:1])
        decoder = MjpegDecoder()
        assert decoder.feed(body[:-5]) == []
        assert decoder.buffered > 0
        assert decoder.feed(body[-5:]) == jpeg_frames[:1]


class TestDecoderWithoutContentLength:
    def test_frames_split_on_markers(
        self, jpeg_frames: list[bytes], mjpeg_body: Callable[..., bytes]
    ) -> None:
        decoder = MjpegDecoder()
        assert decoder.feed(mjpeg_body(jpeg_frames, content_length=False)) == jpeg_frames

    def test_chunked_feed(self, jpeg_frames: list[bytes], mjpeg_body: Callable[..., bytes]) -> None:
        body = mjpeg_body(jpeg_frames, content_length=False)
        decoder = MjpegDecoder()
        frames: list[bytes] = []
        for i in range(0, len(body), 7):
            frames.extend(decoder.feed(body[i : i + 7]))
        assert frames == jpeg_frames

    def test_marker_split_across_chunks(self) -> None:
        decoder = MjpegDecoder()
        assert decoder.feed(b"\xff") == []
        assert decoder.feed(b"\xd8payload\xff") == []
        assert decoder.feed(b"\xd9") == [SOI + b"payload" + EOI]

    def test_bare_jpeg_stream(self, jpeg_frames: list[bytes]) -> None:
        decoder = MjpegDecoder()
        assert decoder.feed(b"".join(jpeg_frames)) == jpeg_frames


class TestDecoderState:
    def test_headers_only_yield_nothing(self) -> None:
        decoder = MjpegDecoder()
        assert decoder.feed(b"--frame\r\nContent-Type: image/jpeg\r\n") == []

    def test_oversized_garbage_is_discarded(self) -> None:
        decoder = MjpegDecoder(max_frame_size=64)
        assert decoder.feed(b"x" * 100) == []
        assert decoder.buffered == 0

    def test_reset_clears_partial_frame(self) -> None:
        decoder = MjpegDecoder()
        decoder.feed(SOI + b"partial")
        decoder.reset()
        assert decoder.buffered == 0
        assert decoder.feed(b"tail" + EOI) == []


class TestDecodeStream:
    @pytest.mark.asyncio
    async def test_decode_async_chunks(
        self, jpeg_frames: list[bytes], mjpeg_body: Callable[..., bytes]
    ) -> None:
        body = mjpeg_body(jpeg_frames)

        async def chunks() -> AsyncIterator[bytes]:
            for i in range(0, len(body), 50):
                yield body[i : i + 50]

        frames = [frame async for frame in decode_stream(chunks())]
        assert frames == jpeg_frames
