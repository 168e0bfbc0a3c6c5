"""MJPEG stream decoding for camrelay.

Public API:
    MjpegDecoder -- Incremental multipart frame decoder
    decode_stream -- Async adapter from raw chunks to frames
"""

from camrelay.mjpeg.decoder import MjpegDecoder, decode_stream

__all__ = ["MjpegDecoder", "decode_stream"]
