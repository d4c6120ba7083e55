"""
Interactive session monitor.

Posted once as a user task before the session runs. Each activation probes
for a keystroke without blocking, acts on it, and either asks to be
rescheduled or stops:

    SCHEDULED --activation--> RUNNING --+--> SCHEDULED  (returns the delay)
                                        +--> TERMINAL   (returns None)

Keys: q aborts the session, s prints stats, g prints the filter graph.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

import structlog

from fchain.engine.base import FilterSession
from fchain.session.keys import KeySource

log = structlog.get_logger(__name__, tool="core")

RESCHEDULE_MS = 500


class ControlCommand(str, Enum):
    ABORT = "abort"
    DUMP_STATS = "dump-stats"
    DUMP_GRAPH = "dump-graph"
    NONE = "none"

    @classmethod
    def from_char(cls, char: str) -> "ControlCommand":
        return _KEYMAP.get(char, cls.NONE)


_KEYMAP = {
    "q": ControlCommand.ABORT,
    "s": ControlCommand.DUMP_STATS,
    "g": ControlCommand.DUMP_GRAPH,
}


class MonitorState(str, Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    TERMINAL = "terminal"


class SessionMonitor:
    """Recurring user task servicing keystrokes while the session runs."""

    name = "fchain_monitor"

    def __init__(self, keys: KeySource, interval_ms: int = RESCHEDULE_MS) -> None:
        self.keys = keys
        self.interval_ms = interval_ms
        self.state = MonitorState.SCHEDULED
        self.activations = 0

    def poll(self) -> ControlCommand:
        if not self.keys.has_input():
            return ControlCommand.NONE
        return ControlCommand.from_char(self.keys.get_char())

    def __call__(self, session: FilterSession) -> Optional[int]:
        if self.state is MonitorState.TERMINAL:
            return None
        self.state = MonitorState.RUNNING
        self.activations += 1

        command = self.poll()
        if command is ControlCommand.ABORT:
            log.info("monitor.abort")
            session.abort()
            self.state = MonitorState.TERMINAL
            return None
        if command is ControlCommand.DUMP_STATS:
            session.print_stats()
        elif command is ControlCommand.DUMP_GRAPH:
            session.print_connections()

        if session.is_last_task():
            log.debug("monitor.session_drained", activations=self.activations)
            self.state = MonitorState.TERMINAL
            return None

        self.state = MonitorState.SCHEDULED
        return self.interval_ms
