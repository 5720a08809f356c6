"""
Logging configuration for Ferret Bot.

Colored console output on stderr plus a rotating key=value file log.

Usage:
    from logging_config import setup_logging

    setup_logging()                      # bot / server process
    setup_logging(console_only=True)     # discovery worker
    logger = logging.getLogger("ferret.commands")

Environment variables:
    FERRET_LOG_LEVEL - root log level (default: INFO)
"""

import copy
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

_LOG_DIR = Path.home() / ".ferret-bot" / "logs"
_LOG_FILE = _LOG_DIR / "ferret.log"
_MAX_BYTES = 10 * 1024 * 1024
_BACKUP_COUNT = 5

_NOISY_LOGGERS = ("aiogram.event", "httpcore", "httpx", "uvicorn.access")


class _ConsoleFormatter(logging.Formatter):
    """Colored, human-readable formatter for terminal output."""

    _COLORS = {
        logging.DEBUG:    "\033[36m",
        logging.INFO:     "\033[32m",
        logging.WARNING:  "\033[33m",
        logging.ERROR:    "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    _RESET = "\033[0m"

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        # Copy so ANSI codes don't leak into the file handler
        record = copy.copy(record)
        color = self._COLORS.get(record.levelno, "")
        reset = self._RESET if color else ""
        record.levelname = f"{color}{record.levelname}{reset}"
        return super().format(record)


class _KeyValueFormatter(logging.Formatter):
    """One line per record:

        ts=2026-10-18T14:30:00.123Z level=INFO logger=ferret.commands msg="..."
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%S.%f"
        )[:-3] + "Z"

        msg = record.getMessage()
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            msg = msg + " | " + record.exc_text

        # Escape so command output can't forge extra log lines
        msg = msg.replace("\\", "\\\\").replace('"', '\\"')
        msg = msg.replace("\n", "\\n").replace("\r", "\\r")

        return f'ts={ts} level={record.levelname} logger={record.name} msg="{msg}"'


def _level_from_env() -> int:
    level_name = os.environ.get("FERRET_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def setup_logging(console_only: bool = False) -> None:
    """Initialize logging for the current process.

    Safe to call multiple times; handlers are only added once per process.
    """
    root = logging.getLogger()
    if getattr(root, "_ferret_logging_configured", False):
        return

    level = _level_from_env()
    root.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(_ConsoleFormatter())
    root.addHandler(console_handler)

    if not console_only:
        try:
            _LOG_DIR.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=str(_LOG_FILE),
                maxBytes=_MAX_BYTES,
                backupCount=_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(_KeyValueFormatter())
            root.addHandler(file_handler)
        except OSError:
            root.warning("Could not create log file at %s; file logging disabled", _LOG_FILE)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root._ferret_logging_configured = True  # type: ignore[attr-defined]
