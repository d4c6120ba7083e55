"""
Command-line token classification.

Every argument is one of:
  * a flag (leading ``-``), handled by the global option parser;
  * a link directive ``@[N]``, wiring the next filter to an earlier one;
  * a filter request: ``src=URL``, ``dst=URL`` or a named filter spec.

Tokens are never modified: ``name`` and ``value`` are views over the raw
text, so the original argument can always be handed to the engine intact.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

DELIMITER = "="
LINK_PREFIX = "@"
FLAG_PREFIX = "-"
SOURCE_PREFIX = "src="
DESTINATION_PREFIX = "dst="

_LEADING_INT = re.compile(r"\s*\+?(\d+)")


@dataclass(frozen=True)
class Token:
    """Immutable view of one argument, split on its first '='."""

    raw: str
    split_at: Optional[int] = None

    @classmethod
    def parse(cls, raw: str) -> "Token":
        idx = raw.find(DELIMITER)
        return cls(raw=raw, split_at=idx if idx > 0 else None)

    @property
    def name(self) -> str:
        return self.raw if self.split_at is None else self.raw[: self.split_at]

    @property
    def value(self) -> Optional[str]:
        return None if self.split_at is None else self.raw[self.split_at + 1:]

    @property
    def is_flag(self) -> bool:
        return self.raw.startswith(FLAG_PREFIX)

    @property
    def is_link(self) -> bool:
        return self.raw.startswith(LINK_PREFIX)

    def __str__(self) -> str:
        return self.raw


def parse_link_offset(text: str) -> int:
    """Offset of a link directive body (the part after '@').

    Parsing is lenient, like atoi: leading digits are used and anything
    that does not start with a digit yields 0.
    """
    m = _LEADING_INT.match(text)
    return int(m.group(1)) if m else 0


@dataclass(frozen=True)
class LinkDirective:
    offset: int = 0

    @classmethod
    def from_token(cls, token: Token) -> "LinkDirective":
        return cls(offset=parse_link_offset(token.raw[len(LINK_PREFIX):]))


class FilterKind(str, Enum):
    NAMED = "named"
    SOURCE = "source"
    DESTINATION = "destination"


@dataclass(frozen=True)
class FilterRequest:
    """A filter to instantiate; ``spec`` is what the engine receives."""

    kind: FilterKind
    spec: str
    token: Token

    @classmethod
    def from_token(cls, token: Token) -> "FilterRequest":
        raw = token.raw
        if raw.startswith(SOURCE_PREFIX):
            return cls(FilterKind.SOURCE, raw[len(SOURCE_PREFIX):], token)
        if raw.startswith(DESTINATION_PREFIX):
            return cls(FilterKind.DESTINATION, raw[len(DESTINATION_PREFIX):], token)
        return cls(FilterKind.NAMED, raw, token)


Classified = Union[Token, LinkDirective, FilterRequest]


def classify(raw: str) -> Classified:
    """Flags come back as plain Tokens."""
    token = Token.parse(raw)
    if token.is_flag:
        return token
    if token.is_link:
        return LinkDirective.from_token(token)
    return FilterRequest.from_token(token)


def positional(argv: list[str]) -> list[str]:
    """Arguments that are not flags, in order."""
    return [a for a in argv if not a.startswith(FLAG_PREFIX)]
