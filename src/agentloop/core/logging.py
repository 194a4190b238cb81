"""Logging setup for applications embedding agentloop.

The library itself only creates module loggers; nothing here runs on
import. Call :func:`configure_logging` once at startup if you want
agentloop's records on the console or in a file.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentloop.config.schema import LoggingConfig

ROOT_LOGGER = "agentloop"

# Marks handlers installed here so repeated calls replace them.
_HANDLER_FLAG = "_agentloop_handler"


def configure_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Attach console (and optional rotating file) handlers.

    Returns the package root logger.
    """
    from agentloop.config.schema import LoggingConfig as _LoggingConfig

    cfg = config or _LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()

    level = logging.getLevelName(cfg.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter(cfg.format)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    setattr(console, _HANDLER_FLAG, True)
    logger.addHandler(console)

    if cfg.file:
        path = Path(cfg.file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_FLAG, True)
        logger.addHandler(file_handler)

    return logger
