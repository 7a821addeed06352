"""Logging channels for the execution core and its API.

Each channel is a named logger with its own file under ``LOG_DIR`` plus a
console handler:

- engine (``flowcore``): parent of every ``flowcore.*`` module logger
- sse (``flowcore.sse``): event bus and stream lifecycle
- api (``flowcore.api``): HTTP request handling and background runs

Channel loggers do not propagate, so a record is written once, to its own
channel's file.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

# Log directory, configurable via LOG_DIR env var for Docker
LOG_DIR = Path(os.getenv("LOG_DIR", str(Path(__file__).parent.parent / "logs")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Channel -> (logger name, log file)
LOG_CHANNELS: Dict[str, Tuple[str, str]] = {
    "engine": ("flowcore", "engine.log"),
    "sse": ("flowcore.sse", "sse.log"),
    "api": ("flowcore.api", "api.log"),
}

_FILE_FORMAT = "%(asctime)s [%(name)s] [%(levelname)s] %(message)s"
_CONSOLE_FORMAT = "%(asctime)s [%(name)s] %(message)s"

# Prevent duplicate handlers
_configured_loggers: set[str] = set()


def setup_logger(name: str, filename: str, log_dir: Optional[Path] = None) -> logging.Logger:
    """Attach file and console handlers to the logger ``name`` once.

    Args:
        name: Logger name (e.g., 'flowcore.api')
        filename: Log file name inside ``log_dir``
        log_dir: Directory for the file handler. Defaults to LOG_DIR.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if name in _configured_loggers:
        return logger

    directory = LOG_DIR if log_dir is None else log_dir
    directory.mkdir(parents=True, exist_ok=True)

    logger.setLevel(LOG_LEVEL)
    logger.propagate = False

    fh = logging.FileHandler(directory / filename, encoding="utf-8")
    fh.setFormatter(logging.Formatter(_FILE_FORMAT))

    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    logger.addHandler(fh)
    logger.addHandler(sh)

    _configured_loggers.add(name)
    return logger


def get_logger(channel: str) -> logging.Logger:
    """Return the configured logger for a channel ('engine', 'sse' or 'api').

    Raises:
        ValueError: If the channel is unknown
    """
    try:
        name, filename = LOG_CHANNELS[channel]
    except KeyError:
        raise ValueError(
            f"Unknown log channel: {channel}. Available: {sorted(LOG_CHANNELS)}"
        ) from None
    return setup_logger(name, filename)


def configure_logging() -> None:
    """Set up every channel (application startup)."""
    for channel in LOG_CHANNELS:
        get_logger(channel)
