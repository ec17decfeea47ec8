"""Priority-filtered logging to stderr, a file or syslog."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, TextIO

from .timespec import Timespec, timespec_str

MESSAGE_LIMIT = 2047


class Priority(IntEnum):
    """Syslog priority levels; a lower value is more severe."""

    EMERG = 0
    ALERT = 1
    CRIT = 2
    ERR = 3
    WARNING = 4
    NOTICE = 5
    INFO = 6
    DEBUG = 7


_BY_NAME = {p.name.lower(): p for p in Priority}


def priority_from_name(name: str) -> Priority:
    """Return the priority called ``name`` (``"err"``, ``"debug"``, ...)."""
    try:
        return _BY_NAME[name]
    except (KeyError, TypeError):
        raise ValueError(f"{name}: invalid log priority") from None


def name_from_priority(priority: int) -> str:
    """Return the short name of ``priority``, or ``"unknown"``."""
    try:
        return Priority(priority).name.lower()
    except ValueError:
        return "unknown"


def _format_line(priority: int, text: str) -> str:
    stamp = timespec_str(Timespec.now())
    return f"{stamp}: <{name_from_priority(priority)}> {text}\n"


def _to_stderr(priority: int, text: str) -> None:
    sys.stderr.write(_format_line(priority, text))


@dataclass
class _State:
    max_level: int = Priority.NOTICE
    file: TextIO | None = None
    sink: Callable[[int, str], None] = field(default=_to_stderr)


_state = _State()


def _to_file(priority: int, text: str) -> None:
    if _state.file is not None:
        _state.file.write(_format_line(priority, text))
        _state.file.flush()


def set_priority_max_level(priority: int) -> None:
    """Drop messages less severe than ``priority``."""
    _state.max_level = priority


def log_message(priority: int, message: str) -> None:
    """Emit ``message`` at ``priority`` if it passes the current filter."""
    if priority > _state.max_level:
        return
    _state.sink(priority, message[:MESSAGE_LIMIT])


def log_error(message: str) -> None:
    log_message(Priority.ERR, message)


def log_warning(message: str) -> None:
    log_message(Priority.WARNING, message)


def log_notice(message: str) -> None:
    log_message(Priority.NOTICE, message)


def log_info(message: str) -> None:
    log_message(Priority.INFO, message)


def log_debug(message: str) -> None:
    log_message(Priority.DEBUG, message)


def log_fatal(message: str) -> None:
    """Log at error level and exit with status 2."""
    log_message(Priority.ERR, message)
    raise SystemExit(2)


def syslog_open(ident: str, option: int, facility: int) -> None:
    """Send further messages to syslog."""
    import syslog

    syslog.openlog(ident, option, facility)

    def _to_syslog(priority: int, text: str) -> None:
        syslog.syslog(priority, text)

    _state.sink = _to_syslog


def file_open(path) -> None:
    """Append further messages to the file at ``path``."""
    handle = open(path, "a", encoding="utf-8", buffering=1)
    if _state.file is not None:
        _state.file.close()
    _state.file = handle
    _state.sink = _to_file


def term() -> None:
    """Close any log file and return to logging on stderr."""
    if _state.file is not None:
        _state.file.close()
    _state.file = None
    _state.sink = _to_stderr