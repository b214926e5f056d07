"""Runtime logging helpers.

Every record carries ``extra["turn"]``: the chat id of the turn being
processed in the current context, or ``-`` outside a turn.
"""

from __future__ import annotations

import contextlib
import os
import sys
from collections.abc import Iterator
from contextvars import ContextVar
from logging import Handler
from pathlib import Path
from typing import Literal

import loguru
from loguru import logger
from rich import get_console
from rich.logging import RichHandler

LogProfile = Literal["default", "chat"]

STDERR_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {name}:{function}:{line} | {extra[turn]} | {message}"
CHAT_FORMAT = "[{extra[turn]}] {message}"
FILE_ROTATION = "5 MB"
FILE_RETENTION = 3

_current_turn: ContextVar[str] = ContextVar("turn", default="-")
_configured: tuple[LogProfile, Path | None] | None = None


def current_turn() -> str:
    return _current_turn.get()


@contextlib.contextmanager
def turn_scope(chat_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``chat_id``."""
    token = _current_turn.set(chat_id)
    try:
        yield
    finally:
        _current_turn.reset(token)


def _inject_turn(record: loguru.Record) -> None:
    record["extra"]["turn"] = current_turn()


def _rich_handler() -> Handler:
    return RichHandler(
        console=get_console(),
        show_level=True,
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )


def configure_logging(
    *,
    profile: LogProfile = "default",
    level: str | None = None,
    log_file: Path | None = None,
) -> None:
    """Configure process-level logging once per profile and file."""
    global _configured
    if _configured == (profile, log_file):
        return

    level = (level or os.getenv("BUBBLE_LOG_LEVEL", "INFO")).upper()
    logger.remove()
    logger.configure(patcher=_inject_turn)
    if profile == "chat":
        logger.add(_rich_handler(), level=level, format=CHAT_FORMAT, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, level=level, format=STDERR_FORMAT, backtrace=False, diagnose=False)
    if log_file is not None:
        logger.add(
            log_file.expanduser(),
            level="DEBUG",
            format=STDERR_FORMAT,
            rotation=FILE_ROTATION,
            retention=FILE_RETENTION,
            encoding="utf-8",
            enqueue=True,
        )
    _configured = (profile, log_file)
