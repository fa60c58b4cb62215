"""Logging setup for the pagewise CLI, with per-turn context on every record.

The engine binds a short turn id and the turn's context mode while a turn is
being composed and routed; :class:`TurnFormatter` stamps them on each record so
a single conversation turn can be followed through the log file.
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import os
import sys
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

__all__ = [
    "TurnContext",
    "TurnFormatter",
    "bind_turn",
    "current_turn",
    "get_log_path",
    "setup_logging",
]

_DEFAULT_LOG_DIR = Path.home() / ".pagewise" / "logs"
_LOG_DIR_ENV = "PAGEWISE_LOG_DIR"
_LOG_FILE_NAME = "pagewise.log"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(turn)s | %(message)s"
_CONSOLE_FORMAT = "pagewise %(levelname)s: %(message)s"
# Third-party chatter kept at WARNING unless the root level is stricter.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")

_CURRENT_TURN: contextvars.ContextVar["TurnContext | None"] = contextvars.ContextVar(
    "pagewise_turn", default=None
)
_INSTALLED: list[logging.Handler] = []
_LOG_PATH: Path | None = None


# ----------------------------------------------------------------------
# Turn context
# ----------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class TurnContext:
    """Identity of the turn currently being processed."""

    turn_id: str
    mode: str
    model: str | None = None

    def label(self) -> str:
        return f"turn={self.turn_id} mode={self.mode}"


@contextmanager
def bind_turn(mode: str, model: str | None = None) -> Iterator[TurnContext]:
    """Attach a fresh turn id to log records emitted inside the block."""

    context = TurnContext(turn_id=uuid.uuid4().hex[:8], mode=mode, model=model)
    token = _CURRENT_TURN.set(context)
    try:
        yield context
    finally:
        _CURRENT_TURN.reset(token)


def current_turn() -> TurnContext | None:
    return _CURRENT_TURN.get()


class TurnFormatter(logging.Formatter):
    """Formatter that fills ``%(turn)s`` from the bound turn context."""

    def format(self, record: logging.LogRecord) -> str:
        turn = _CURRENT_TURN.get()
        record.turn = turn.label() if turn is not None else "-"
        return super().format(record)


# ----------------------------------------------------------------------
# Handlers
# ----------------------------------------------------------------------


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    console_level: int | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install the pagewise file handler (and a stderr console handler).

    Only handlers installed here are replaced on reconfiguration; handlers that
    other code attached to the root logger are left alone. Console output goes
    to stderr so replies streamed to stdout stay clean, and *console_level*
    defaults to *level*.

    Returns:
        Path of the rotating log file.
    """

    global _LOG_PATH
    if _INSTALLED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    log_path = _resolve_log_dir(log_dir) / _LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(TurnFormatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handlers: list[logging.Handler] = [file_handler]

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(console_level if console_level is not None else level)
        console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        handlers.append(console_handler)

    root = logging.getLogger()
    _remove_installed(root)
    for handler in handlers:
        root.addHandler(handler)
        _INSTALLED.append(handler)
    root.setLevel(level)
    logging.captureWarnings(True)
    _quiet_third_party(level)

    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH


def _remove_installed(root: logging.Logger) -> None:
    while _INSTALLED:
        handler = _INSTALLED.pop()
        root.removeHandler(handler)
        handler.close()


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()


def _quiet_third_party(root_level: int) -> None:
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
