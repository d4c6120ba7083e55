"""
Registry introspection for -list, -list-meta and -info.

Everything is written to stderr by default so it never mixes with data a
destination filter may be writing to stdout.
"""
from __future__ import annotations

import sys
from typing import Iterable, Sequence, TextIO

from fchain.registry.models import (
    ANY_PIDS,
    CODEC_NAMES,
    PROP_NAMES,
    STREAM_TYPE_NAMES,
    Capability,
    CapFlag,
    FilterDescriptor,
    PropCode,
    fourcc_to_str,
)

WILDCARD_PLAIN = "*"
WILDCARD_QUALIFIED = "*:*"


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def matches(token: str, desc: FilterDescriptor) -> bool:
    """Does a positional -info token select *desc*?"""
    if token == desc.name:
        return True
    if token == WILDCARD_PLAIN:
        return not desc.qualified
    if token == WILDCARD_QUALIFIED:
        return desc.qualified
    return False


def select_for_info(
    registry: Iterable[FilterDescriptor], tokens: Sequence[str]
) -> list[FilterDescriptor]:
    """Descriptors selected by the first positional token, in registry order."""
    names = [t for t in tokens if not t.startswith("-")]
    if not names:
        return []
    return [desc for desc in registry if matches(names[0], desc)]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def _cap_name(cap: Capability) -> str:
    if cap.name:
        return cap.name
    return PROP_NAMES.get(cap.code) or fourcc_to_str(cap.code)


def _cap_value(cap: Capability) -> str:
    if cap.code == PropCode.STREAM_TYPE and isinstance(cap.value, int):
        return STREAM_TYPE_NAMES.get(cap.value, str(cap.value))
    if cap.code == PropCode.CODECID and isinstance(cap.value, int):
        return CODEC_NAMES.get(cap.value, str(cap.value))
    if isinstance(cap.value, bool):
        return "true" if cap.value else "false"
    return "" if cap.value is None else str(cap.value)


def format_caps(caps: Sequence[Capability]) -> list[str]:
    lines: list[str] = []
    for i, cap in enumerate(caps):
        if cap.is_marker and i + 1 == len(caps):
            break
        if i == 0:
            lines.append("Capabilities Bundle:")
        elif cap.is_marker:
            lines.append("Capabilities Bundle:")
            continue

        line = "\t Flags:"
        if cap.flags & CapFlag.INPUT:
            line += " Input"
        if cap.flags & CapFlag.OUTPUT:
            line += " Output"
        if cap.flags & CapFlag.EXCLUDED:
            line += " Exclude"
        if cap.flags & CapFlag.EXPLICIT:
            line += " ExplicitOnly"
        line += f" Type={_cap_name(cap)}, value={_cap_value(cap)}"
        if cap.priority:
            line += f", priority={cap.priority}"
        lines.append(line)
    return lines


def format_filter(desc: FilterDescriptor) -> list[str]:
    lines = [f"Name: {desc.name}"]
    if desc.description:
        lines.append(f"Description: {desc.description}")
    if desc.author:
        lines.append(f"Author: {desc.author}")
    if desc.comment:
        lines.append(f"Comment: {desc.comment}")

    if desc.max_extra_pids == ANY_PIDS:
        lines.append("Max Input pids: any")
    else:
        lines.append(f"Max Input pids: {1 + desc.max_extra_pids}")

    flags = "Flags:"
    if desc.explicit_only:
        flags += " ExplicitOnly"
    if desc.requires_main_thread:
        flags += " MainThread"
    if desc.is_source:
        flags += " IsSource"
    if desc.reconfigure_output:
        flags += " ReconfigurableOutput"
    lines.append(flags)
    lines.append(f"Priority {desc.priority}")

    if desc.args:
        lines.append("Options:")
        for a in desc.args:
            line = f"\t{a.name} ({a.type.value}): {a.description}."
            if a.default is not None:
                line += f" Default {a.default}."
            else:
                line += " No default."
            if a.min_max_enum:
                kind = "Enum" if "|" in a.min_max_enum else "minmax"
                line += f" {kind}: {a.min_max_enum}"
            if a.updatable:
                line += " Updatable attribute."
            lines.append(line)
    else:
        lines.append("No options")

    if desc.caps:
        lines.extend(format_caps(desc.caps))
    lines.append("")
    return lines


# ---------------------------------------------------------------------------
# Printing
# ---------------------------------------------------------------------------

def list_filters(
    registry: Sequence[FilterDescriptor],
    include_meta: bool = False,
    out: TextIO | None = None,
) -> None:
    out = out or sys.stderr
    suffix = " including meta-filters" if include_meta else ""
    print(f"Listing {len(registry)} supported filters{suffix}:", file=out)
    for desc in registry:
        print(f"{desc.name}: {desc.description}", file=out)


def print_filters_info(
    registry: Sequence[FilterDescriptor],
    tokens: Sequence[str],
    out: TextIO | None = None,
) -> int:
    """Print full records for matching descriptors. Returns how many were printed."""
    out = out or sys.stderr
    selected = select_for_info(registry, tokens)
    for desc in selected:
        print("\n".join(format_filter(desc)), file=out)
    return len(selected)
