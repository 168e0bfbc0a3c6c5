"""Command-line interface for camrelay.

Starts the stream relay, the data hub, or both in one process.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="camrelay",
        description="WebSocket relay for an MJPEG camera and device sensor data",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/camrelay.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("serve", help="Run the stream relay and the data hub")

    stream_parser = subparsers.add_parser("stream", help="Run only the stream relay")
    stream_parser.add_argument(
        "--camera-url", type=str, default=None,
        help="MJPEG source URL (overrides config)",
    )

    subparsers.add_parser("data", help="Run only the data hub")

    return parser.parse_args(argv)


def _stream_server(settings) -> uvicorn.Server:
    import uvicorn
    from camrelay.stream.server import create_app

    sc = settings.stream
    app = create_app(
        camera_url=sc.camera_url,
        timeout=sc.timeout,
        chunk_size=sc.chunk_size,
        max_frame_size=sc.max_frame_size,
    )
    return uvicorn.Server(uvicorn.Config(app, host=sc.host, port=sc.port))


def _data_server(settings) -> uvicorn.Server:
    import uvicorn
    from camrelay.hub.server import create_app

    dc = settings.data
    app = create_app(send_timeout=dc.send_timeout, max_pending=dc.max_pending)
    return uvicorn.Server(uvicorn.Config(app, host=dc.host, port=dc.port))


async def _serve(servers: list) -> None:
    """Run uvicorn servers side by side on one event loop."""
    await asyncio.gather(*(server.serve() for server in servers))


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the camrelay CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from camrelay.config.settings import load_settings
    from camrelay.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info(
            "Starting stream relay on port %d and data hub on port %d",
            settings.stream.port, settings.data.port,
        )
        asyncio.run(_serve([_stream_server(settings), _data_server(settings)]))

    elif args.command == "stream":
        if args.camera_url:
            settings.stream.camera_url = args.camera_url
        logger.info("Starting stream relay on port %d", settings.stream.port)
        asyncio.run(_serve([_stream_server(settings)]))

    elif args.command == "data":
        logger.info("Starting data hub on port %d", settings.data.port)
        asyncio.run(_serve([_data_server(settings)]))


if __name__ == "__main__":
    main()
