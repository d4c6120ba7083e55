"""
Filter registry descriptors.

These types describe what a filter is (name, options, capabilities); they are
what -list, -info and -links print and what the engine matches when it wires
filters together.
"""
from __future__ import annotations

from enum import Enum, IntEnum, IntFlag
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

ANY_PIDS = -1
"""max_extra_pids sentinel: the filter accepts any number of input PIDs."""


def fourcc(code: str) -> int:
    """Pack a four-character code into an integer."""
    if len(code) != 4:
        raise ValueError(f"four-character code expected, got {code!r}")
    b = code.encode("ascii")
    return (b[0] << 24) | (b[1] << 16) | (b[2] << 8) | b[3]


def fourcc_to_str(code: int) -> str:
    return "".join(chr((code >> shift) & 0xFF) for shift in (24, 16, 8, 0))


class PropType(str, Enum):
    BOOL = "bool"
    UINT = "uint"
    SINT = "sint"
    FLOAT = "flt"
    STRING = "str"


class PropCode(IntEnum):
    STREAM_TYPE = fourcc("PMST")
    CODECID = fourcc("POTI")
    FILE_EXT = fourcc("PFEX")
    MIME = fourcc("PMIM")


PROP_NAMES: dict[int, str] = {
    PropCode.STREAM_TYPE: "StreamType",
    PropCode.CODECID: "CodecID",
    PropCode.FILE_EXT: "Extension",
    PropCode.MIME: "MIMEType",
}


class StreamType(IntEnum):
    VISUAL = 1
    AUDIO = 2
    TEXT = 3
    FILE = 4


class CodecID(IntEnum):
    RAW = 1
    DEFLATE = 2


STREAM_TYPE_NAMES: dict[int, str] = {
    StreamType.VISUAL: "Visual",
    StreamType.AUDIO: "Audio",
    StreamType.TEXT: "Text",
    StreamType.FILE: "File",
}

CODEC_NAMES: dict[int, str] = {
    CodecID.RAW: "raw",
    CodecID.DEFLATE: "deflate",
}


class CapFlag(IntFlag):
    NONE = 0
    IN_BUNDLE = 1
    INPUT = 2
    OUTPUT = 4
    EXCLUDED = 8
    EXPLICIT = 16


class FilterArg(BaseModel):
    """One declared filter option."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: PropType
    description: str
    default: Optional[str] = None
    min_max_enum: Optional[str] = None  # "a|b|c" enum, or "min-max"
    updatable: bool = False

    @property
    def enum_values(self) -> list[str]:
        if self.min_max_enum and "|" in self.min_max_enum:
            return self.min_max_enum.split("|")
        return []


class Capability(BaseModel):
    """One capability line. A capability without IN_BUNDLE separates bundles."""

    model_config = ConfigDict(frozen=True)

    code: int = 0
    value: Union[int, str, None] = None
    flags: CapFlag = CapFlag.NONE
    name: Optional[str] = None
    priority: int = 0

    @property
    def is_marker(self) -> bool:
        return not (self.flags & CapFlag.IN_BUNDLE)

    @classmethod
    def marker(cls) -> "Capability":
        return cls()


def cap_in(code: int, value, *, excluded: bool = False, priority: int = 0) -> Capability:
    flags = CapFlag.IN_BUNDLE | CapFlag.INPUT
    if excluded:
        flags |= CapFlag.EXCLUDED
    return Capability(code=code, value=value, flags=flags, priority=priority)


def cap_out(code: int, value, *, explicit: bool = False, priority: int = 0) -> Capability:
    flags = CapFlag.IN_BUNDLE | CapFlag.OUTPUT
    if explicit:
        flags |= CapFlag.EXPLICIT
    return Capability(code=code, value=value, flags=flags, priority=priority)


def cap_inout(code: int, value) -> Capability:
    return Capability(
        code=code,
        value=value,
        flags=CapFlag.IN_BUNDLE | CapFlag.INPUT | CapFlag.OUTPUT,
    )


class FilterDescriptor(BaseModel):
    """Registry entry for one filter implementation."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    author: Optional[str] = None
    comment: Optional[str] = None
    max_extra_pids: int = 0
    explicit_only: bool = False
    requires_main_thread: bool = False
    is_source: bool = False
    reconfigure_output: bool = False
    priority: int = 0
    args: list[FilterArg] = Field(default_factory=list)
    caps: list[Capability] = Field(default_factory=list)

    @property
    def qualified(self) -> bool:
        """Meta-filter instances are registered as ``name:instance``."""
        return ":" in self.name

    def bundles(self) -> list[list[Capability]]:
        """Capabilities grouped into bundles, markers dropped."""
        groups: list[list[Capability]] = []
        current: list[Capability] = []
        for cap in self.caps:
            if cap.is_marker:
                if current:
                    groups.append(current)
                current = []
                continue
            current.append(cap)
        if current:
            groups.append(current)
        return groups

    def has_inputs(self) -> bool:
        return any(c.flags & CapFlag.INPUT for c in self.caps)

    def has_outputs(self) -> bool:
        return any(c.flags & CapFlag.OUTPUT for c in self.caps)

    def arg(self, name: str) -> Optional[FilterArg]:
        for a in self.args:
            if a.name == name:
                return a
        return None


def _side(bundle: list[Capability], flag: CapFlag) -> list[Capability]:
    return [c for c in bundle if c.flags & flag]


def _bundle_accepts(outputs: list[Capability], inputs: list[Capability]) -> bool:
    produced = {(c.code, c.value) for c in outputs if not c.flags & CapFlag.EXCLUDED}
    produced_codes = {code for code, _ in produced}
    for cap in inputs:
        if cap.code not in produced_codes:
            continue
        hit = (cap.code, cap.value) in produced
        if cap.flags & CapFlag.EXCLUDED:
            if hit:
                return False
        elif not hit:
            return False
    return bool(inputs)


def can_connect(src: FilterDescriptor, dst: FilterDescriptor, *, explicit: bool = False) -> bool:
    """True when some output bundle of *src* satisfies some input bundle of *dst*.

    Output capabilities flagged EXPLICIT only count for explicit links.
    """
    for out_bundle in src.bundles():
        outputs = [
            c for c in _side(out_bundle, CapFlag.OUTPUT)
            if explicit or not c.flags & CapFlag.EXPLICIT
        ]
        if not outputs:
            continue
        for in_bundle in dst.bundles():
            if _bundle_accepts(outputs, _side(in_bundle, CapFlag.INPUT)):
                return True
    return False
