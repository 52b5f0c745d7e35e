"""Levelled logging with a build-time cut-off, and panics."""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import Callable, Optional

ARGS_MAX = 16
"""Most arguments one log call may carry."""


class LogLevel(IntEnum):
    OFF = 0x00
    THROUGH = 0x01
    FATAL = 0x02
    ERROR = 0x03
    WARN = 0x04
    INFO = 0x05
    DEBUG = 0x06
    ALL = 0x07


class PanicError(RuntimeError):
    """Raised by :meth:`Logger.panic`; the system cannot go on."""


Sink = Callable[[LogLevel, str], None]


def _stderr_sink(level: LogLevel, text: str) -> None:
    sys.stderr.write(text)


def _render(fmt: str, args: tuple) -> str:
    if len(args) > ARGS_MAX:
        raise ValueError(f"at most {ARGS_MAX} log arguments are allowed")
    return fmt % args if args else fmt


class Logger:
    """Formats printf-style messages and passes those within ``build_level`` to ``sink``."""

    def __init__(
        self,
        tag: str = "",
        build_level: LogLevel = LogLevel.ALL,
        sink: Optional[Sink] = None,
    ) -> None:
        self.tag = tag
        self.build_level = LogLevel(build_level)
        self.sink = sink if sink is not None else _stderr_sink

    def log(self, level: LogLevel, fmt: str, *args) -> Optional[str]:
        """Emit one line; return the text, or None when the level is cut off."""
        level = LogLevel(level)
        if level == LogLevel.OFF or level > self.build_level:
            return None
        text = self.tag + _render(fmt, args) + "\n"
        self.sink(level, text)
        return text

    def through(self, fmt: str, *args) -> Optional[str]:
        return self.log(LogLevel.THROUGH, fmt, *args)

    def fatal(self, fmt: str, *args) -> Optional[str]:
        return self.log(LogLevel.FATAL, fmt, *args)

    def error(self, fmt: str, *args) -> Optional[str]:
        return self.log(LogLevel.ERROR, fmt, *args)

    def warn(self, fmt: str, *args) -> Optional[str]:
        return self.log(LogLevel.WARN, fmt, *args)

    def info(self, fmt: str, *args) -> Optional[str]:
        return self.log(LogLevel.INFO, fmt, *args)

    def debug(self, fmt: str, *args) -> Optional[str]:
        return self.log(LogLevel.DEBUG, fmt, *args)

    def panic(self, fmt: str, *args) -> None:
        """Report an unrecoverable condition and raise :class:`PanicError`."""
        text = "[PANIC]" + _render(fmt, args) + "\n"
        self.sink(LogLevel.FATAL, text)
        raise PanicError(text)