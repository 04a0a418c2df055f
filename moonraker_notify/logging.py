"""Logging setup for moonraker-notify.

Every record goes to stdout and, when a log path is configured, is also
appended to that file, so one run leaves the same trail on the console and
on disk.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# aiohttp chatter that only matters when debugging the wire
NETWORK_LOGGERS = ("aiohttp.client", "aiohttp.websocket", "aiohttp.internal")


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: str = "INFO",
    *,
    log_path: Optional[Path] = None,
    log_network: bool = False,
    fmt: str = LOG_FORMAT,
) -> List[logging.Handler]:
    """Route root logging to stdout plus an optional appending log file.

    Existing root handlers are replaced. Unknown level names fall back to
    INFO. Unless ``log_network`` is set, :data:`NETWORK_LOGGERS` are capped at
    WARNING. Returns the handlers now attached to the root logger.
    """

    formatter = logging.Formatter(fmt)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode="a", encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.captureWarnings(True)
    logging.basicConfig(level=_resolve_level(level), handlers=handlers, force=True)

    network_level = logging.NOTSET if log_network else logging.WARNING
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)

    return handlers
