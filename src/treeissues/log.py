"""Logging setup for the treeissues CLI and web server."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Any

_LOGGER_NAME = "treeissues"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_setup_lock = threading.Lock()


class _StderrHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler that writes to whatever ``sys.stderr`` is at emit time."""

    @property  # type: ignore[override]
    def stream(self) -> Any:
        return sys.stderr

    @stream.setter
    def stream(self, _value: Any) -> None:
        pass


def setup_logging(level: str | int = logging.WARNING) -> logging.Logger:
    """Send treeissues log records to stderr at *level*.

    Safe to call more than once; later calls only adjust the level.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.WARNING

    with _setup_lock:
        if not any(isinstance(h, _StderrHandler) for h in logger.handlers):
            handler = _StderrHandler()
            handler.setFormatter(logging.Formatter(_FORMAT))
            logger.addHandler(handler)
        logger.setLevel(level)
    return logger
