"""
Non-blocking keystroke sources for the interactive session monitor.

TerminalKeySource puts a terminal stdin into cbreak mode so single keys are
readable without Enter, and restores the terminal on exit. Piped stdin is
read one byte at a time; end of input disables the source.
"""
from __future__ import annotations

import os
import sys
from types import TracebackType
from typing import Protocol, TextIO

import structlog

log = structlog.get_logger(__name__, tool="core")

_WINDOWS = sys.platform == "win32"


class KeySource(Protocol):
    def has_input(self) -> bool:
        ...

    def get_char(self) -> str:
        ...


class NullKeySource:
    """Never has input. Used when stdin is unavailable."""

    def has_input(self) -> bool:
        return False

    def get_char(self) -> str:
        return ""

    def __enter__(self) -> "NullKeySource":
        return self

    def __exit__(self, *exc) -> None:
        return None


class TerminalKeySource:
    """Context manager polling stdin for single keystrokes."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdin
        self._fd: int | None = None
        self._saved_attrs = None
        self._closed = False
        self._tty = False

    def __enter__(self) -> "TerminalKeySource":
        try:
            self._fd = self._stream.fileno()
        except (AttributeError, OSError, ValueError):
            self._closed = True
            return self
        self._tty = os.isatty(self._fd)
        if self._tty and not _WINDOWS:
            import termios
            import tty

            try:
                self._saved_attrs = termios.tcgetattr(self._fd)
                tty.setcbreak(self._fd)
            except (termios.error, OSError) as exc:
                log.warning("keys.cbreak_failed", error=str(exc))
                self._saved_attrs = None
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._saved_attrs is None:
            return
        import termios

        try:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_attrs)
        except (termios.error, OSError) as exc:
            log.warning("keys.restore_failed", error=str(exc))
        finally:
            self._saved_attrs = None

    def has_input(self) -> bool:
        if self._closed or self._fd is None:
            return False
        if _WINDOWS:
            if not self._tty:
                return False
            import msvcrt

            return bool(msvcrt.kbhit())
        import select

        readable, _, _ = select.select([self._fd], [], [], 0)
        return bool(readable)

    def get_char(self) -> str:
        if self._closed or self._fd is None:
            return ""
        if _WINDOWS:
            import msvcrt

            return msvcrt.getwch()
        data = os.read(self._fd, 1)
        if not data:
            self._closed = True
            return ""
        return data.decode("utf-8", errors="ignore")
