"""
Filter chain construction.

Walks the command line in order and instantiates one filter per filter
token. A link directive ``@k`` wires the next filter created to the filter
``k`` positions before the last one loaded; only the most recent directive
before a filter counts. The first failure stops construction.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional

import structlog

from fchain.cli.tokens import FilterKind, FilterRequest, LinkDirective, classify
from fchain.engine.base import FilterSession
from fchain.errors import BadLinkIndexError, FilterLoadError, NoFiltersError

log = structlog.get_logger(__name__, tool="core")


class ChainBuilder:
    """Turns filter tokens into an ordered, append-only list of filter handles."""

    def __init__(self, session: FilterSession) -> None:
        self.session = session
        self.loaded: list[Any] = []
        self.pending_link: Optional[int] = None
        self._loaders = {
            FilterKind.NAMED: session.load_filter,
            FilterKind.SOURCE: session.load_source,
            FilterKind.DESTINATION: session.load_destination,
        }

    def feed(self, raw: str) -> Optional[Any]:
        """Process one argument. Returns the filter created, if any."""
        item = classify(raw)
        if isinstance(item, LinkDirective):
            if self.pending_link is not None:
                log.debug("chain.link_superseded", previous=self.pending_link, offset=item.offset)
            self.pending_link = item.offset
            return None
        if isinstance(item, FilterRequest):
            return self._add(item)
        return None

    def build(self, argv: Iterable[str]) -> list[Any]:
        """Process every argument; raises on the first failure.

        Raises:
            BadLinkIndexError: a link directive points before the first filter.
            FilterLoadError: the engine could not create a filter.
            NoFiltersError: no filter token was given at all.
        """
        for raw in argv:
            self.feed(raw)
        if self.pending_link is not None:
            log.debug("chain.link_discarded", offset=self.pending_link)
            self.pending_link = None
        if not self.loaded:
            raise NoFiltersError()
        return self.loaded

    def _resolve_link(self, offset: int) -> Any:
        index = len(self.loaded) - 1 - offset
        if not 0 <= index < len(self.loaded):
            raise BadLinkIndexError(offset, len(self.loaded))
        return self.loaded[index]

    def _add(self, request: FilterRequest) -> Any:
        handle = self._loaders[request.kind](request.spec)

        link_from = None
        if self.pending_link is not None:
            link_from = self._resolve_link(self.pending_link)
        if handle is None:
            raise FilterLoadError(request.token.raw)
        if link_from is not None:
            self.session.set_source(handle, link_from)
            self.pending_link = None

        self.loaded.append(handle)
        log.debug(
            "chain.filter_loaded",
            kind=request.kind.value,
            spec=request.spec,
            index=len(self.loaded) - 1,
            linked=link_from is not None,
        )
        return handle
