import errno
import io
import logging
import os
import re

import pytest

from roku.log import LogFormatter, LogLevel, init_logging


def _record(level, msg="hello", exc_info=None):
    return logging.LogRecord("roku.test", level, "src/clat.c", 42, msg, None, exc_info)


def test_plain_format():
    line = LogFormatter(colored=False).format(_record(logging.WARNING))
    time_part, rest = line.split(" ", 1)
    assert rest == "WARN clat.c:42 hello"
    assert len(time_part) == 8
    assert [len(part) for part in time_part.split(":")] == [2, 2, 2]
    assert re.fullmatch(r"\d\d:\d\d:\d\d", time_part) is not None


def test_colored_format():
    line = LogFormatter(colored=True).format(_record(logging.ERROR))
    assert "\033[0;31mERROR\033[0m" in line
    assert line.endswith(" hello")


def test_fatal_level_name():
    line = LogFormatter().format(_record(LogLevel.FATAL))
    assert " FATAL " in line


def test_os_error_reason_appended():
    exc = OSError(errno.ENOENT, os.strerror(errno.ENOENT))
    line = LogFormatter().format(_record(logging.ERROR, "open failed", (OSError, exc, None)))
    assert line.endswith(f"open failed ({os.strerror(errno.ENOENT)})")


def test_init_logging_filters_by_level():
    stream = io.StringIO()
    logger = init_logging(LogLevel.INFO, stream)
    logger.debug("hidden message")
    logger.info("shown message")
    output = stream.getvalue()
    assert "shown message" in output
    assert "hidden message" not in output
    assert "\033[" not in output


def test_init_logging_debug_level():
    stream = io.StringIO()
    logger = init_logging(LogLevel.DEBUG, stream)
    logger.debug("details")
    assert " DEBUG " in stream.getvalue()


def test_fatal_exits():
    stream = io.StringIO()
    logger = init_logging(LogLevel.INFO, stream)
    with pytest.raises(SystemExit) as info:
        logger.log(LogLevel.FATAL, "boom")
    assert info.value.code == 1
    assert "FATAL" in stream.getvalue()