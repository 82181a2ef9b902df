from __future__ import annotations

import logging
from typing import Protocol

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogSink(Protocol):
    def record(self, message: str, url: str = "", level: str = "info", verbosity: int = 0) -> None: ...


class LoggingLogSink:
    """Forward engine events to stdlib logging.

    Entries with ``verbosity`` above zero are detail-level and drop to DEBUG so
    they only show with ``-vv``.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("mediatether.events")

    def record(self, message: str, url: str = "", level: str = "info", verbosity: int = 0) -> None:
        log_level = _LEVELS.get(level, logging.INFO)
        if verbosity > 0 and log_level < logging.WARNING:
            log_level = logging.DEBUG
        text = f"{message} ({url})" if url else message
        self.logger.log(log_level, text, extra={"url": url, "verbosity": verbosity})
