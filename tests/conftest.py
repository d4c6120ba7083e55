"""
Shared pytest fixtures for all test levels.
Engine-facing code is tested against a recording fake session; the local
engine is exercised directly with the -ltf unit-test filters.
"""
from __future__ import annotations

from collections import deque
from typing import Any, Optional

import pytest
import structlog

from fchain.engine.base import FilterSession
from fchain.engine.local import LocalSession
from fchain.engine.registry import FilterRegistry


# ---------------------------------------------------------------------------
# Environment: keep FCHAIN_* from the developer shell out of the tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for key in ("FCHAIN_THREADS", "FCHAIN_SCHED", "FCHAIN_LOGS", "FCHAIN_LOG_FILE", "FCHAIN_LEAK_CHECK"):
        monkeypatch.delenv(key, raising=False)
    yield
    structlog.reset_defaults()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeFilter:
    def __init__(self, kind: str, spec: str) -> None:
        self.kind = kind
        self.spec = spec
        self.source: Optional["FakeFilter"] = None

    def __repr__(self) -> str:
        return f"<FakeFilter {self.kind}:{self.spec}>"


class FakeSession(FilterSession):
    """Records every engine call; specs listed in ``failing`` fail to load."""

    def __init__(self, failing: tuple[str, ...] = (), drained: bool = True) -> None:
        self.failing = set(failing)
        self.drained = drained
        self.created: list[FakeFilter] = []
        self.tasks: list[tuple[str, Any]] = []
        self.calls: list[str] = []
        self.runs = 0
        self.aborted = False
        self.closed = False

    def _load(self, kind: str, spec: str) -> Optional[FakeFilter]:
        self.calls.append(f"{kind}:{spec}")
        if spec in self.failing:
            return None
        f = FakeFilter(kind, spec)
        self.created.append(f)
        return f

    def load_filter(self, spec):
        return self._load("filter", spec)

    def load_source(self, url):
        return self._load("source", url)

    def load_destination(self, url):
        return self._load("destination", url)

    def set_source(self, filter, source):
        filter.source = source

    def post_user_task(self, callback, name):
        self.tasks.append((name, callback))

    def run(self):
        self.runs += 1
        for _, callback in self.tasks:
            for _ in range(10):
                if callback(self) is None:
                    break

    def is_last_task(self):
        return self.drained

    def abort(self):
        self.aborted = True
        self.calls.append("abort")

    def print_stats(self):
        self.calls.append("stats")

    def print_connections(self):
        self.calls.append("graph")

    def print_possible_connections(self):
        self.calls.append("links")

    def registry(self):
        return FilterRegistry.default().descriptors(include_meta=False)

    def register_test_filters(self):
        self.calls.append("ltf")

    def close(self):
        self.closed = True


class ScriptedKeys:
    """Key source replaying a fixed sequence of keystrokes."""

    def __init__(self, chars: str = "") -> None:
        self.chars = deque(chars)

    def has_input(self) -> bool:
        return bool(self.chars)

    def get_char(self) -> str:
        return self.chars.popleft()

    def __enter__(self) -> "ScriptedKeys":
        return self

    def __exit__(self, *exc) -> None:
        return None


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def local_session() -> LocalSession:
    session = LocalSession()
    session.register_test_filters()
    yield session
    session.close()


@pytest.fixture
def make_fake_session():
    """Factory for FakeSession with custom failing specs / drained state."""
    return FakeSession


@pytest.fixture
def scripted_keys():
    """Factory for ScriptedKeys('qs...')."""
    return ScriptedKeys
