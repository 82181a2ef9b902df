from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

_FILE_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"


def _level_for_verbosity(verbosity: int) -> int:
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def configure_logging(
    verbosity: int = 0,
    *,
    log_file: Path | None = None,
    console: Console | None = None,
) -> None:
    """Route all mediatether loggers through a rich console handler.

    ``verbosity`` follows the CLI ``-v`` count: warnings by default, info at
    one, debug at two or more. An optional ``log_file`` receives the same
    records in a plain, parseable format.
    """
    level = _level_for_verbosity(verbosity)
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_mediatether", False):
            root.removeHandler(handler)

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        level=level,
        show_path=verbosity >= 2,
        rich_tracebacks=True,
        log_time_format="[%X]",
    )
    rich_handler._mediatether = True  # type: ignore[attr-defined]
    root.addHandler(rich_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        file_handler.setLevel(logging.DEBUG)
        file_handler._mediatether = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    root.setLevel(min(level, logging.DEBUG) if log_file is not None else level)
    # Third-party chatter stays at warning unless debugging.
    logging.getLogger("paramiko").setLevel(logging.DEBUG if verbosity >= 3 else logging.WARNING)
