"""
Global option parsing.

Flags are independent and order-insensitive; they are all applied before
any filter is created. Unknown flags are ignored so that options consumed
elsewhere do not break the command line.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Sequence

from fchain.cli.tokens import Token
from fchain.config import ListMode, LogSinkConfig, RunConfig, env_defaults
from fchain.engine.base import SchedulerMode
from fchain.errors import LogConfigError, UsageError
from fchain.logs.levels import default_levels, parse_log_spec

HELP_FLAGS = ("-h", "-help")

# flag -> (RunConfig field, value)
_SWITCHES: dict[str, tuple[str, Any]] = {
    "-list": ("list_mode", ListMode.FILTERS),
    "-list-meta": ("list_mode", ListMode.META),
    "-info": ("print_info", True),
    "-links": ("print_links", True),
    "-stats": ("dump_stats", True),
    "-graph": ("dump_graph", True),
    "-no-block": ("disable_blocking", True),
    "-ltf": ("load_test_filters", True),
    "-strict-error": ("strict_error", True),
}

# flag -> LogSinkConfig field
_LOG_SWITCHES: dict[str, str] = {
    "-log-clock": "clock",
    "-lc": "clock",
    "-log-utc": "utc",
    "-lu": "utc",
}

_LOG_FILE_FLAGS = ("-log-file", "-lf")


def wants_help(argv: Sequence[str]) -> bool:
    return any(arg in HELP_FLAGS for arg in argv)


def _scheduler(value: Optional[str]) -> SchedulerMode:
    try:
        return SchedulerMode(value)
    except ValueError:
        valid = ", ".join(m.value for m in SchedulerMode)
        raise UsageError(f"Unknown scheduler mode {value!r}, expected one of: {valid}") from None


def _threads(value: Optional[str]) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise UsageError(f"-threads expects an integer, got {value!r}") from None


def parse_options(argv: Sequence[str]) -> RunConfig:
    """Build the run configuration from environment defaults and flags.

    Raises:
        UsageError: a flag is missing its value or the value is invalid.
        LogConfigError: the -logs specification is malformed.
    """
    try:
        env = env_defaults()
    except ValueError as exc:
        raise UsageError(f"Invalid environment default: {exc}") from None
    fields: dict[str, Any] = {
        "threads": env["threads"],
        "scheduler": _scheduler(env["sched"]),
        "leak_check": env["leak_check"],
    }
    log_fields: dict[str, Any] = {
        "log_file": Path(env["log_file"]) if env["log_file"] else None,
    }
    levels = parse_log_spec(env["logs"]) if env["logs"] else default_levels()

    for raw in argv:
        token = Token.parse(raw)
        if not token.is_flag:
            continue
        name, value = token.name, token.value

        if name in _SWITCHES:
            field, setting = _SWITCHES[name]
            fields[field] = setting
        elif name in _LOG_SWITCHES:
            log_fields[_LOG_SWITCHES[name]] = True
        elif name in _LOG_FILE_FLAGS:
            if not value:
                raise UsageError(f"{name} expects a file path ({name}=PATH)")
            log_fields["log_file"] = Path(value)
        elif name == "-logs":
            if value is None:
                raise LogConfigError("-logs expects a specification (-logs=tool@level)")
            levels = parse_log_spec(value, base=levels)
        elif name == "-threads":
            fields["threads"] = _threads(value)
        elif name == "-sched":
            fields["scheduler"] = _scheduler(value)

    return RunConfig(**fields, log=LogSinkConfig(**log_fields, levels=levels))
