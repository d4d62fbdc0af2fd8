# src/todoist_autolabel/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "autolabel.log"

_FILE_MAX_BYTES = 5 * 1024 * 1024
_FILE_BACKUPS = 3

_DATEFMT = "%Y-%m-%d %H:%M:%S"

_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[90m",
    logging.INFO: "\x1b[36m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[31;1m",
}
_RESET = "\x1b[0m"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console shows the service's own records; everything else is reduced:
    httpx / httpcore / openai at WARNING+, the rest (py.warnings included) at ERROR+.
    """

    _SDK_PREFIXES = ("httpx", "httpcore", "openai")

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("todoist_autolabel"):
            return True
        if record.name.startswith(self._SDK_PREFIXES):
            return record.levelno >= logging.WARNING
        return record.levelno >= logging.ERROR


class _ColorLevelFormatter(logging.Formatter):
    """Colors the level name only; message text stays plain for grepping."""

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelno)
        if not color:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{color}{original}{_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(
    *,
    log_dir: str | Path = ".local/autolabel",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    color: bool | None = None,
) -> Path:
    """
    Install the console and file handlers on the root logger.

    The file (<log_dir>/autolabel.log) keeps every record at file_level and
    rotates at 5 MB. Color defaults to on when stderr is a terminal.
    Call once, before the first log record. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    if color is None:
        color = sys.stderr.isatty()

    line_fmt = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
    console_formatter = (
        _ColorLevelFormatter(line_fmt, datefmt=_DATEFMT) if color else logging.Formatter(line_fmt, datefmt=_DATEFMT)
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(console_formatter)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        str(log_file),
        maxBytes=_FILE_MAX_BYTES,
        backupCount=_FILE_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(line_fmt, datefmt=_DATEFMT))
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    # Request-level chatter from the HTTP stack is not useful even in the file.
    for name in _ConsoleNoiseFilter._SDK_PREFIXES:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
