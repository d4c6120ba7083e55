"""
Run configuration for fchain.

Defaults are read from environment variables at call time; command-line flags
override them. The resulting RunConfig is immutable and is passed explicitly
to the log sink, the session factory and the run driver.
"""
from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import psutil
from pydantic import BaseModel, ConfigDict, Field

from fchain.engine.base import SchedulerMode
from fchain.logs.levels import default_levels


def _opt(key: str, default: Optional[str]) -> Optional[str]:
    return os.getenv(key, default)


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes")


def env_defaults() -> dict[str, Any]:
    """Environment-provided defaults, keyed like the command-line flags they back."""
    return {
        "threads": _int("FCHAIN_THREADS", 0),
        "sched": _opt("FCHAIN_SCHED", SchedulerMode.FREE.value),
        "logs": _opt("FCHAIN_LOGS", None),
        "log_file": _opt("FCHAIN_LOG_FILE", None),
        "leak_check": _bool("FCHAIN_LEAK_CHECK", False),
    }


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------

class TimestampMode(str, Enum):
    NONE = "none"
    RELATIVE = "relative"
    UTC = "utc"
    BOTH = "both"


class ListMode(str, Enum):
    NONE = "none"
    FILTERS = "filters"
    META = "meta"


class LogSinkConfig(BaseModel):
    """Where log lines go and how they are stamped."""

    model_config = ConfigDict(frozen=True)

    clock: bool = False
    utc: bool = False
    log_file: Optional[Path] = None
    levels: dict[str, int] = Field(default_factory=default_levels)

    @property
    def timestamp_mode(self) -> TimestampMode:
        if self.clock and self.utc:
            return TimestampMode.BOTH
        if self.clock:
            return TimestampMode.RELATIVE
        if self.utc:
            return TimestampMode.UTC
        return TimestampMode.NONE


class RunConfig(BaseModel):
    """Everything the global flags decide, built once before any engine activity."""

    model_config = ConfigDict(frozen=True)

    threads: int = 0
    scheduler: SchedulerMode = SchedulerMode.FREE
    disable_blocking: bool = False
    list_mode: ListMode = ListMode.NONE
    print_info: bool = False
    print_links: bool = False
    dump_stats: bool = False
    dump_graph: bool = False
    load_test_filters: bool = False
    strict_error: bool = False
    leak_check: bool = False
    log: LogSinkConfig = Field(default_factory=LogSinkConfig)

    @property
    def wants_meta(self) -> bool:
        """Meta-filters are only listed for -list-meta and -info."""
        return self.list_mode is ListMode.META or self.print_info


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------

def system_info() -> tuple[int, int]:
    """Physical memory in MB and logical core count."""
    total = psutil.virtual_memory().total
    return total // (1024 * 1024), psutil.cpu_count(logical=True) or 1


def resolve_threads(requested: int) -> int:
    """Negative thread counts mean 'all cores but the controlling one'."""
    if requested >= 0:
        return requested
    cores = psutil.cpu_count(logical=True) or 1
    return max(cores - 1, 0)
