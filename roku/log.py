"""Logging setup with the compact timestamped line format used on stderr."""

import logging
import sys
import time
from enum import IntEnum

_RESET = "\033[0m"


def _fg(color: str, text: str) -> str:
    return f"\033[0;{color}m{text}{_RESET}"


class LogLevel(IntEnum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARN = logging.WARNING
    ERROR = logging.ERROR
    FATAL = logging.CRITICAL


DEFAULT_LOG_LEVEL = LogLevel.INFO

_LEVEL_COLORS = {
    LogLevel.DEBUG: "90",
    LogLevel.INFO: "32",
    LogLevel.WARN: "33",
    LogLevel.ERROR: "31",
    LogLevel.FATAL: "31",
}


def _level_for(levelno: int) -> LogLevel:
    chosen = LogLevel.DEBUG
    for level in LogLevel:
        if level <= levelno:
            chosen = level
    return chosen


class LogFormatter(logging.Formatter):
    """Formats records as 'HH:MM:SS LEVEL file:line message', optionally colored."""

    def __init__(self, colored: bool = False):
        super().__init__()
        self.colored = colored

    def format(self, record: logging.LogRecord) -> str:
        stamp = time.strftime("%H:%M:%S", time.localtime(record.created))
        level = _level_for(record.levelno)
        if self.colored:
            prefix = (
                f"{_fg('90', stamp)} {_fg(_LEVEL_COLORS[level], level.name)} "
                f"{_fg('36', record.filename)}:{_fg('96', str(record.lineno))} "
            )
        else:
            prefix = f"{stamp} {level.name} {record.filename}:{record.lineno} "
        line = prefix + record.getMessage()
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            reason = exc.strerror if isinstance(exc, OSError) and exc.strerror else str(exc)
            line += f" ({reason or 'Unknown error'})"
        return line


class _ExitingHandler(logging.StreamHandler):
    """Stream handler that terminates the process after a fatal record."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        if record.levelno >= LogLevel.FATAL:
            raise SystemExit(1)


def init_logging(level=DEFAULT_LOG_LEVEL, stream=None) -> logging.Logger:
    """Configure the package logger to write to stream (stderr by default)."""
    stream = sys.stderr if stream is None else stream
    isatty = getattr(stream, "isatty", None)
    colored = bool(isatty and isatty())

    logger = logging.getLogger("roku")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = _ExitingHandler(stream)
    handler.setFormatter(LogFormatter(colored))
    logger.addHandler(handler)
    logger.setLevel(int(level))
    logger.propagate = False
    return logger