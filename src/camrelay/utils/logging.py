"""Logging setup for the camrelay servers."""

from __future__ import annotations

import logging
import sys

from camrelay.config.settings import LoggingConfig

# Set on handlers we install so a second setup_logging() replaces them
_HANDLER_MARK = "_camrelay_handler"


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Attach stderr (and optionally file) output to the ``camrelay`` logger.

    Calling it again swaps the previous camrelay handlers for new ones
    instead of stacking duplicates.
    """
    config = config or LoggingConfig()
    logger = logging.getLogger("camrelay")
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in [h for h in logger.handlers if getattr(h, _HANDLER_MARK, False)]:
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))

    formatter = logging.Formatter(config.format)
    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        logger.addHandler(handler)

    logger.debug("Logging at %s to %s", config.level, config.file or "stderr")
    return logger
