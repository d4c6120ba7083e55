"""
Log sink: routes every structlog line to stderr or a log file, optionally
prefixed with a relative high-resolution clock and/or UTC wall-clock time.

The sink owns the process-wide logging state for one run. It is configured
once, before any engine activity, and torn down when the run ends:

    with LogSink(cfg.log):
        ...
"""
from __future__ import annotations

import sys
import time
from datetime import datetime, timezone
from types import TracebackType
from typing import Callable, TextIO

import structlog

from fchain.config import LogSinkConfig
from fchain.errors import LogConfigError
from fchain.logs.levels import ToolLevelFilter

log = structlog.get_logger(__name__, tool="core")


def _clock_us() -> int:
    return time.perf_counter_ns() // 1000


def _utc_ms() -> int:
    return time.time_ns() // 1_000_000


class TimestampPrefixer:
    """Builds the per-line prefix and tracks the time of the previous line."""

    def __init__(
        self,
        *,
        relative: bool,
        utc: bool,
        clock_us: Callable[[], int] = _clock_us,
        utc_ms: Callable[[], int] = _utc_ms,
    ) -> None:
        self.relative = relative
        self.utc = utc
        self._clock_us = clock_us
        self._utc_ms = utc_ms
        self.start_us = clock_us()
        self.last_us = self.start_us

    def prefix(self) -> str:
        parts: list[str] = []
        if self.relative:
            now = self._clock_us()
            parts.append(f"At {now - self.start_us} (diff {now - self.last_us}) - ")
            self.last_us = now
        if self.utc:
            ms = self._utc_ms()
            stamp = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
            parts.append(f"UTC {stamp.strftime('%Y-%m-%dT%H:%M:%SZ')} (TS {ms}) - ")
        return "".join(parts)


class PrefixedRenderer:
    """Final structlog processor: prefix + rendered line."""

    def __init__(self, prefixer: TimestampPrefixer, renderer=None) -> None:
        self.prefixer = prefixer
        self.renderer = renderer or structlog.dev.ConsoleRenderer(colors=False)

    def __call__(self, logger, method_name: str, event_dict: dict) -> str:
        line = self.renderer(logger, method_name, event_dict)
        return self.prefixer.prefix() + line


class LogSink:
    """Context manager configuring structlog for the lifetime of a run."""

    def __init__(
        self,
        config: LogSinkConfig,
        *,
        stream: TextIO | None = None,
        clock_us: Callable[[], int] = _clock_us,
        utc_ms: Callable[[], int] = _utc_ms,
    ) -> None:
        self.config = config
        self._stream = stream
        self._file: TextIO | None = None
        self.prefixer = TimestampPrefixer(
            relative=config.clock,
            utc=config.utc,
            clock_us=clock_us,
            utc_ms=utc_ms,
        )

    @property
    def target(self) -> TextIO:
        if self._file is not None:
            return self._file
        return self._stream if self._stream is not None else sys.stderr

    def __enter__(self) -> "LogSink":
        if self.config.log_file is not None:
            try:
                self.config.log_file.parent.mkdir(parents=True, exist_ok=True)
                self._file = open(self.config.log_file, "w", encoding="utf-8")
            except OSError as exc:
                raise LogConfigError(f"Cannot open log file {self.config.log_file}: {exc}") from exc
        structlog.configure(
            processors=[
                ToolLevelFilter(self.config.levels),
                structlog.processors.add_log_level,
                PrefixedRenderer(self.prefixer),
            ],
            logger_factory=structlog.PrintLoggerFactory(file=self.target),
            cache_logger_on_first_use=False,
        )
        log.debug(
            "logs.configured",
            timestamps=self.config.timestamp_mode.value,
            log_file=str(self.config.log_file) if self.config.log_file else None,
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        structlog.reset_defaults()
        if self._file is not None:
            self._file.close()
            self._file = None
