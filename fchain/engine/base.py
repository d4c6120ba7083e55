"""
Engine boundary: the operations the command-line front end needs from a
filter session. The CLI only ever talks to this interface; LocalSession is
the in-process implementation shipped with fchain.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from types import TracebackType
from typing import Any, Callable, Optional

from fchain.registry.models import FilterDescriptor


class SchedulerMode(str, Enum):
    FREE = "free"
    LOCK = "lock"
    FLOCK = "flock"
    DIRECT = "direct"
    FREEX = "freex"


TaskCallback = Callable[["FilterSession"], Optional[int]]
"""A user task returns a reschedule delay in milliseconds, or None to stop."""


class FilterSession(ABC):
    """A filter graph being built and run.

    Lifecycle:
        1. load filters (``load_filter`` / ``load_source`` / ``load_destination``)
           and optionally wire them with ``set_source``;
        2. ``post_user_task`` any recurring work;
        3. ``run`` blocks until the graph drains or ``abort`` is called;
        4. ``close`` releases every filter.
    """

    # ----- Chain construction ---------------------------------------------

    @abstractmethod
    def load_filter(self, spec: str) -> Any | None:
        """Instantiate a filter from ``name[:opt=value...]``. None on failure."""

    @abstractmethod
    def load_source(self, url: str) -> Any | None:
        """Instantiate the source filter able to read *url*. None on failure."""

    @abstractmethod
    def load_destination(self, url: str) -> Any | None:
        """Instantiate the sink filter able to write *url*. None on failure."""

    @abstractmethod
    def set_source(self, filter: Any, source: Any) -> None:
        """Restrict *filter* inputs to the outputs of *source*."""

    # ----- Execution -------------------------------------------------------

    @abstractmethod
    def post_user_task(self, callback: TaskCallback, name: str) -> None:
        ...

    @abstractmethod
    def run(self) -> None:
        """Block until no work is left or the session is aborted."""

    @abstractmethod
    def is_last_task(self) -> bool:
        """True when only the calling user task is left in the session."""

    @abstractmethod
    def abort(self) -> None:
        ...

    # ----- Reporting -------------------------------------------------------

    @abstractmethod
    def print_stats(self) -> None:
        ...

    @abstractmethod
    def print_connections(self) -> None:
        ...

    @abstractmethod
    def print_possible_connections(self) -> None:
        ...

    @abstractmethod
    def registry(self) -> list[FilterDescriptor]:
        ...

    @abstractmethod
    def register_test_filters(self) -> None:
        ...

    # ----- Teardown --------------------------------------------------------

    @abstractmethod
    def close(self) -> None:
        ...

    def open_resources(self) -> int:
        """Resources still held after close (files, connections)."""
        return 0

    def __enter__(self) -> "FilterSession":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
