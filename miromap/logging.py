"""Logging for the CLI and the server.

``setup_logging`` installs a stderr handler (WARNING, or DEBUG with
``--verbose``) and, when an output directory is configured, a rotating log
file at ``<output_dir>/.miromap/miromap.log`` whose level is read from
``MIROMAP_LOG_LEVEL``.

Records emitted inside ``board_context(board_id)`` carry that board id, so
the node-by-node trail of one materialization can be pulled out of a log
file shared by concurrent requests. Access tokens are never logged.
"""

from __future__ import annotations

import contextvars
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_LEVEL_ENV = "MIROMAP_LOG_LEVEL"
LOG_DIR_NAME = ".miromap"
LOG_FILE_NAME = "miromap.log"

_ROTATE_BYTES = 2 * 1024 * 1024
_ROTATE_KEEP = 3

_TERMINAL_FORMAT = "%(levelname)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)-7s [board=%(board)s] %(name)s: %(message)s"

_current_board: contextvars.ContextVar[str] = contextvars.ContextVar(
    "miromap_board", default="-"
)


@contextmanager
def board_context(board_id: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``board_id``."""
    token = _current_board.set(board_id)
    try:
        yield
    finally:
        _current_board.reset(token)


class BoardFilter(logging.Filter):
    """Adds ``record.board`` from the active ``board_context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.board = _current_board.get()
        return True


def log_file_path(output_dir: Path) -> Path:
    return output_dir / LOG_DIR_NAME / LOG_FILE_NAME


def file_log_level() -> int:
    """Level for the log file from ``MIROMAP_LOG_LEVEL``; unknown names mean INFO."""
    level = logging.getLevelName(os.environ.get(LOG_LEVEL_ENV, "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _own_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if getattr(h, "miromap", False)]


def setup_logging(*, output_dir: Path | None = None, verbose: bool = False) -> Path | None:
    """Install miromap's handlers on the root logger.

    Handlers from an earlier call are replaced; handlers installed by anyone
    else are left alone. Returns the log file path, or None without one.
    """
    root = logging.getLogger()
    for handler in _own_handlers(root):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)

    terminal = logging.StreamHandler()
    terminal.setLevel(logging.DEBUG if verbose else logging.WARNING)
    terminal.setFormatter(logging.Formatter(_TERMINAL_FORMAT))
    handlers: list[logging.Handler] = [terminal]

    path = None
    if output_dir is not None:
        path = log_file_path(output_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        log_file = RotatingFileHandler(
            path, maxBytes=_ROTATE_BYTES, backupCount=_ROTATE_KEEP, encoding="utf-8"
        )
        log_file.setLevel(file_log_level())
        log_file.setFormatter(logging.Formatter(_FILE_FORMAT))
        handlers.append(log_file)

    for handler in handlers:
        handler.miromap = True  # type: ignore[attr-defined]
        handler.addFilter(BoardFilter())
        root.addHandler(handler)

    # httpx logs each request line at INFO
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)
    return path
