"""
Per-tool log levels.

A -logs specification is a ':'-separated list of ``tool[:tool...]@level``
entries, e.g. ``all@info:network:filter@debug``. Tools listed before an
``@level`` all receive that level; ``all`` applies to every tool and can be
refined by later entries.
"""
from __future__ import annotations

import logging

import structlog

from fchain.errors import LogConfigError

QUIET = logging.CRITICAL + 10

LOG_LEVELS: dict[str, int] = {
    "quiet": QUIET,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

LOG_TOOLS: tuple[str, ...] = (
    "core", "coding", "container", "network", "rtp", "author", "sync",
    "codec", "parser", "media", "scene", "script", "interact", "smil",
    "compose", "mmio", "rti", "cache", "audio", "mem", "dash", "module",
    "filter", "mutex",
)

_METHOD_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "msg": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "exception": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


def default_levels() -> dict[str, int]:
    return {tool: logging.WARNING for tool in LOG_TOOLS}


def parse_log_spec(spec: str, base: dict[str, int] | None = None) -> dict[str, int]:
    """Apply a -logs specification on top of *base* (defaults: all@warning)."""
    levels = dict(base) if base is not None else default_levels()
    if not spec:
        raise LogConfigError("Empty log specification")

    pending: list[str] = []
    for item in spec.split(":"):
        tool, sep, level_name = item.partition("@")
        pending.append(tool.strip().lower())
        if not sep:
            continue
        level = LOG_LEVELS.get(level_name.strip().lower())
        if level is None:
            raise LogConfigError(f"Unknown log level \"{level_name}\" in \"{spec}\"")
        for name in pending:
            if name == "all":
                levels = {t: level for t in LOG_TOOLS}
            elif name in LOG_TOOLS:
                levels[name] = level
            else:
                raise LogConfigError(f"Unknown log tool \"{name}\" in \"{spec}\"")
        pending = []

    if pending:
        raise LogConfigError(f"Missing log level for {', '.join(pending)} in \"{spec}\"")
    return levels


class ToolLevelFilter:
    """structlog processor dropping events below their tool's level."""

    def __init__(self, levels: dict[str, int], default_tool: str = "core") -> None:
        self._levels = dict(levels)
        self._default_tool = default_tool

    def __call__(self, logger, method_name: str, event_dict: dict) -> dict:
        tool = event_dict.pop("tool", self._default_tool)
        threshold = self._levels.get(tool, logging.WARNING)
        if _METHOD_LEVELS.get(method_name, logging.INFO) < threshold:
            raise structlog.DropEvent
        return event_dict
