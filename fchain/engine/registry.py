"""
Filter registry: stores filter implementations and looks them up by name or
by the URL scheme they serve.
"""
from __future__ import annotations

from urllib.parse import urlsplit

import structlog

from fchain.engine.filters import FilterImpl
from fchain.registry.models import FilterDescriptor

log = structlog.get_logger(__name__, tool="filter")


# Built-in filter classes, populated by _load_builtins() on first access.
_BUILTIN_FILTERS: dict[str, type[FilterImpl]] | None = None


def _load_builtins() -> dict[str, type[FilterImpl]]:
    from fchain.engine.filters import (
        FileInput,
        FileOutput,
        HttpInput,
        PacketLog,
        UTFilter,
        UTSink,
        UTSource,
        ZlibDeflate,
        ZlibInflate,
    )

    classes = [
        FileInput, HttpInput, FileOutput, PacketLog,
        ZlibDeflate, ZlibInflate,
        UTSource, UTFilter, UTSink,
    ]
    return {cls.descriptor.name: cls for cls in classes}


def _get_builtins() -> dict[str, type[FilterImpl]]:
    global _BUILTIN_FILTERS
    if _BUILTIN_FILTERS is None:
        _BUILTIN_FILTERS = _load_builtins()
    return _BUILTIN_FILTERS


DEFAULT_FILTER_NAMES: list[str] = ["fin", "httpin", "fout", "flog"]
META_FILTER_NAMES: list[str] = ["zlib:deflate", "zlib:inflate"]
TEST_FILTER_NAMES: list[str] = ["UTSource", "UTFilter", "UTSink"]


def url_scheme(url: str) -> str:
    """Lower-cased URL scheme; '' for plain paths (including Windows drive letters)."""
    scheme = urlsplit(url).scheme.lower()
    return "" if len(scheme) <= 1 else scheme


class FilterRegistry:
    """Filter classes available to a session, in registration order."""

    def __init__(self) -> None:
        self._filters: dict[str, type[FilterImpl]] = {}

    def register(self, cls: type[FilterImpl]) -> None:
        name = cls.descriptor.name
        if name in self._filters:
            raise ValueError(
                f"Duplicate filter name '{name}'. "
                f"Already registered: {self._filters[name]!r}"
            )
        self._filters[name] = cls
        log.debug("registry.registered", filter=name)

    def get(self, name: str) -> type[FilterImpl] | None:
        return self._filters.get(name)

    def find_source(self, url: str) -> type[FilterImpl] | None:
        scheme = url_scheme(url)
        for cls in self._filters.values():
            if cls.descriptor.is_source and scheme in cls.protocols:
                return cls
        return None

    def find_destination(self, url: str) -> type[FilterImpl] | None:
        scheme = url_scheme(url)
        for cls in self._filters.values():
            if not cls.descriptor.is_source and scheme in cls.protocols:
                return cls
        return None

    def descriptors(self, include_meta: bool = True) -> list[FilterDescriptor]:
        """Registered descriptors; meta-filter instances only when *include_meta*."""
        return [
            cls.descriptor for cls in self._filters.values()
            if include_meta or not cls.descriptor.qualified
        ]

    @property
    def names(self) -> list[str]:
        return list(self._filters.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._filters

    def __len__(self) -> int:
        return len(self._filters)

    def register_test_filters(self) -> None:
        builtins = _get_builtins()
        for name in TEST_FILTER_NAMES:
            if name not in self._filters:
                self.register(builtins[name])

    # ----- Factory methods ------------------------------------------------

    @classmethod
    def from_names(cls, names: list[str]) -> "FilterRegistry":
        """Build a registry from filter names. Unknown names raise KeyError."""
        builtins = _get_builtins()
        registry = cls()
        for name in names:
            if name not in builtins:
                raise KeyError(
                    f"Unknown filter '{name}'. "
                    f"Available: {sorted(builtins.keys())}"
                )
            registry.register(builtins[name])
        return registry

    @classmethod
    def default(cls) -> "FilterRegistry":
        """Built-in filters and meta-filter instances, without test filters."""
        return cls.from_names(DEFAULT_FILTER_NAMES + META_FILTER_NAMES)
