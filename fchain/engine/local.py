"""
In-process filter engine.

A single controlling thread runs a cooperative scheduler: every iteration
steps each active filter once (at most one packet each), then runs the user
tasks that are due. Once every filter has reached end of stream the
remaining user tasks are run immediately so they can observe the drained
graph and stop.

Connections are explicit (``set_source``) or resolved when the session
starts: a filter accepting input is connected to the nearest preceding
filter whose output capabilities match its input capabilities.
"""
from __future__ import annotations

import heapq
import itertools
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, TextIO

import structlog

from fchain.config import RunConfig, resolve_threads
from fchain.engine.base import FilterSession, SchedulerMode, TaskCallback
from fchain.engine.filters import FilterImpl
from fchain.engine.registry import FilterRegistry
from fchain.engine.spec import parse_filter_spec, resolve_args
from fchain.errors import EngineError
from fchain.registry.models import FilterDescriptor, can_connect

log = structlog.get_logger(__name__, tool="filter")

MAX_QUEUED_PACKETS = 8
"""In blocking mode a filter is not stepped while a downstream inbox is this full."""


class FilterState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    EOS = "eos"
    FAILED = "failed"


class FilterInstance:
    """A loaded filter: implementation plus its place in the graph."""

    def __init__(self, impl: FilterImpl, fid: str, spec: str) -> None:
        self.impl = impl
        self.id = fid
        self.spec = spec
        self.sources: list[FilterInstance] = []
        self.sinks: list[FilterInstance] = []
        self.explicit = False
        self.inbox: deque[bytes] = deque()
        self.state = FilterState.CREATED
        self.finalized = False
        self.error: str | None = None
        self.packets_in = 0
        self.packets_out = 0
        self.bytes_in = 0
        self.bytes_out = 0

    @property
    def descriptor(self) -> FilterDescriptor:
        return self.impl.descriptor

    @property
    def name(self) -> str:
        return self.impl.descriptor.name

    @property
    def active(self) -> bool:
        return self.state in (FilterState.CREATED, FilterState.RUNNING)

    def inputs_done(self) -> bool:
        return all(not s.active for s in self.sources)

    def __repr__(self) -> str:
        return f"<Filter {self.name} ({self.id}) {self.state.value}>"


@dataclass(order=True)
class _ScheduledTask:
    due: float
    seq: int
    name: str = field(compare=False)
    callback: TaskCallback = field(compare=False)


class LocalSession(FilterSession):
    def __init__(
        self,
        threads: int = 0,
        scheduler: SchedulerMode = SchedulerMode.FREE,
        *,
        load_meta: bool = False,
        disable_blocking: bool = False,
        strict_error: bool = False,
        registry: FilterRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if threads < 0:
            raise EngineError(f"Invalid thread count {threads}")
        self.threads = threads
        self.scheduler = scheduler
        self.load_meta = load_meta
        self.disable_blocking = disable_blocking
        self.strict_error = strict_error
        self._registry = registry if registry is not None else FilterRegistry.default()
        self._clock = clock
        self._sleep = sleep
        self._filters: list[FilterInstance] = []
        self._tasks: list[_ScheduledTask] = []
        self._seq = itertools.count()
        self._started = False
        self._aborted = False
        self._closed = False
        self.errors = 0
        log.debug(
            "session.created",
            threads=threads,
            scheduler=scheduler.value,
            blocking=not disable_blocking,
            tool="core",
        )

    @classmethod
    def from_config(cls, cfg: RunConfig) -> "LocalSession":
        return cls(
            resolve_threads(cfg.threads),
            cfg.scheduler,
            load_meta=cfg.wants_meta,
            disable_blocking=cfg.disable_blocking,
            strict_error=cfg.strict_error,
        )

    @property
    def filters(self) -> list[FilterInstance]:
        return list(self._filters)

    # ----- Chain construction ---------------------------------------------

    def _instantiate(
        self, cls: type[FilterImpl], options: dict[str, Optional[str]], spec: str
    ) -> FilterInstance | None:
        try:
            impl = cls(resolve_args(cls.descriptor, options))
        except ValueError as exc:
            log.error("filter.load_failed", spec=spec, error=str(exc))
            return None
        inst = FilterInstance(impl, f"F{len(self._filters) + 1}", spec)
        self._filters.append(inst)
        log.debug("filter.loaded", filter=inst.name, id=inst.id, spec=spec)
        return inst

    def load_filter(self, spec: str) -> FilterInstance | None:
        parsed = parse_filter_spec(spec, self._registry)
        cls = self._registry.get(parsed.name)
        if cls is None:
            log.error("filter.not_found", name=parsed.name)
            return None
        return self._instantiate(cls, parsed.options, spec)

    def load_source(self, url: str) -> FilterInstance | None:
        cls = self._registry.find_source(url)
        if cls is None:
            log.error("filter.no_source_for_url", url=url)
            return None
        return self._instantiate(cls, {"src": url}, url)

    def load_destination(self, url: str) -> FilterInstance | None:
        cls = self._registry.find_destination(url)
        if cls is None:
            log.error("filter.no_destination_for_url", url=url)
            return None
        return self._instantiate(cls, {"dst": url}, url)

    def set_source(self, filter: FilterInstance, source: FilterInstance) -> None:
        filter.sources.append(source)
        filter.explicit = True
        if not can_connect(source.descriptor, filter.descriptor, explicit=True):
            log.warning(
                "session.link_caps_mismatch",
                source=source.id,
                filter=filter.id,
            )

    # ----- Execution -------------------------------------------------------

    def post_user_task(self, callback: TaskCallback, name: str) -> None:
        heapq.heappush(
            self._tasks,
            _ScheduledTask(self._clock(), next(self._seq), name, callback),
        )

    def _connect(self) -> None:
        for idx, f in enumerate(self._filters):
            if not f.explicit and f.descriptor.has_inputs():
                for prev in reversed(self._filters[:idx]):
                    if can_connect(prev.descriptor, f.descriptor):
                        f.sources.append(prev)
                        break
                else:
                    log.warning("session.filter_unconnected", filter=f.name, id=f.id)
            for src in f.sources:
                src.sinks.append(f)

    def _setup(self) -> None:
        for f in self._filters:
            try:
                f.impl.initialize()
            except Exception as exc:
                self._fail(f, exc)
                continue
            f.state = FilterState.RUNNING

    def _fail(self, f: FilterInstance, exc: Exception) -> None:
        f.state = FilterState.FAILED
        f.error = f"{type(exc).__name__}: {exc}"
        self.errors += 1
        log.error("filter.failed", filter=f.name, id=f.id, error=f.error)
        if self.strict_error:
            self.abort()

    def _deliver(self, f: FilterInstance, packets: list[bytes]) -> None:
        for packet in packets:
            f.packets_out += 1
            f.bytes_out += len(packet)
            for sink in f.sinks:
                if sink.active:
                    sink.inbox.append(packet)

    def _blocked(self, f: FilterInstance) -> bool:
        if self.disable_blocking:
            return False
        return any(len(s.inbox) >= MAX_QUEUED_PACKETS for s in f.sinks if s.active)

    def _step(self, f: FilterInstance) -> bool:
        """Let *f* handle one packet. Returns True if anything happened."""
        try:
            if not f.descriptor.has_inputs():
                if self._blocked(f):
                    return False
                packet = f.impl.generate()
                if packet is None:
                    self._end_of_stream(f)
                else:
                    self._deliver(f, [packet])
                return True
            if f.inbox:
                if self._blocked(f):
                    return False
                packet = f.inbox.popleft()
                f.packets_in += 1
                f.bytes_in += len(packet)
                self._deliver(f, f.impl.process(packet))
                return True
            if f.inputs_done():
                self._deliver(f, f.impl.flush())
                self._end_of_stream(f)
                return True
        except Exception as exc:
            self._fail(f, exc)
            return True
        return False

    def _end_of_stream(self, f: FilterInstance) -> None:
        f.state = FilterState.EOS
        log.debug("filter.eos", filter=f.name, id=f.id, packets_out=f.packets_out)

    def _drained(self) -> bool:
        return not any(f.active for f in self._filters)

    def _run_due_tasks(self, force: bool = False) -> None:
        now = self._clock()
        due: list[_ScheduledTask] = []
        while self._tasks and (force or self._tasks[0].due <= now):
            due.append(heapq.heappop(self._tasks))
        for task in due:
            try:
                delay_ms = task.callback(self)
            except Exception as exc:
                log.error("session.task_failed", task=task.name, error=str(exc), tool="core")
                continue
            if delay_ms is not None and not self._aborted:
                task.due = now + delay_ms / 1000
                task.seq = next(self._seq)
                heapq.heappush(self._tasks, task)

    def run(self) -> None:
        if self._closed:
            raise EngineError("Session already closed")
        if not self._started:
            self._started = True
            self._connect()
            self._setup()
        log.info("session.run", filters=len(self._filters), tool="core")

        while not self._aborted:
            worked = False
            for f in self._filters:
                if self._aborted:
                    break
                if f.active:
                    worked = self._step(f) or worked
            if self._aborted:
                break
            drained = self._drained()
            self._run_due_tasks(force=drained)
            if drained and not self._tasks:
                break
            if not worked:
                if not self._tasks:
                    log.warning("session.stalled", tool="core")
                    break
                wait = self._tasks[0].due - self._clock()
                if wait > 0:
                    self._sleep(wait)

        self._finalize()
        log.info("session.done", aborted=self._aborted, errors=self.errors, tool="core")

    def is_last_task(self) -> bool:
        return self._started and self._drained()

    def abort(self) -> None:
        if not self._aborted:
            log.info("session.abort_requested", tool="core")
        self._aborted = True

    @property
    def aborted(self) -> bool:
        return self._aborted

    # ----- Reporting -------------------------------------------------------

    def print_stats(self, out: TextIO | None = None) -> None:
        out = out or sys.stderr
        print(
            f"Session stats: {len(self._filters)} filters - {self.threads} extra threads"
            f" - scheduler {self.scheduler.value} - {self.errors} errors",
            file=out,
        )
        for f in self._filters:
            line = (
                f"\t{f.name} ({f.id}) {f.state.value}:"
                f" {f.packets_in} packets in ({f.bytes_in} bytes),"
                f" {f.packets_out} packets out ({f.bytes_out} bytes)"
            )
            if f.error:
                line += f" - error {f.error}"
            print(line, file=out)

    def print_connections(self, out: TextIO | None = None) -> None:
        out = out or sys.stderr
        print("Filter connections:", file=out)
        for f in self._filters:
            print(f"{f.name} ({f.id})", file=out)
            for dst in self._filters:
                if f in dst.sources:
                    print(f"\t-> {dst.name} ({dst.id})", file=out)

    def print_possible_connections(self, out: TextIO | None = None) -> None:
        out = out or sys.stderr
        descriptors = self.registry()
        for src in descriptors:
            if not src.has_outputs():
                continue
            targets = [
                dst.name for dst in descriptors
                if dst is not src and can_connect(src, dst, explicit=True)
            ]
            if targets:
                print(f"{src.name} -> {', '.join(targets)}", file=out)
            else:
                print(f"{src.name} has no possible connection", file=out)

    def registry(self) -> list[FilterDescriptor]:
        return self._registry.descriptors(include_meta=self.load_meta)

    def register_test_filters(self) -> None:
        self._registry.register_test_filters()

    # ----- Teardown --------------------------------------------------------

    def _finalize(self) -> None:
        for f in self._filters:
            if f.finalized:
                continue
            f.finalized = True
            try:
                f.impl.finalize()
            except Exception as exc:
                log.error("filter.finalize_failed", filter=f.name, id=f.id, error=str(exc))

    def close(self) -> None:
        if self._closed:
            return
        self._finalize()
        self._closed = True
        log.debug("session.closed", filters=len(self._filters), tool="core")

    def open_resources(self) -> int:
        return sum(f.impl.open_resources() for f in self._filters)

    def __repr__(self) -> str:
        return f"<LocalSession filters={len(self._filters)} scheduler={self.scheduler.value}>"
