"""Logging setup for the console and its dashboard service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# aiohttp loggers that report every robot dispatch and every operator API hit.
NETWORK_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.server")


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Route ev3-console logs to stderr and, optionally, a file.

    ``level`` is a level name such as ``"DEBUG"``; unknown names fall back to
    INFO. ``log_path`` adds a plain file handler with the same format, creating
    the parent directory. The per-request aiohttp loggers are held at WARNING
    so status polls do not flood the output; pass ``log_network=True`` to see
    each call to the robot relay and each request to the operator API.
    """

    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT
    )

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    network_level = logging.NOTSET if log_network else logging.WARNING
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)
