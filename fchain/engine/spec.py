"""
Filter specification strings: ``name[:opt[=value]][:opt2...]``.

Values are checked against the declared option type and enum/min-max range
before a filter is instantiated.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Container, Optional

from fchain.registry.models import FilterArg, FilterDescriptor, PropType

# Options whose value is a URL and may itself contain ':'.
URL_OPTIONS = ("src", "dst")

_MINMAX_RE = re.compile(r"^(-?\d+(?:\.\d+)?)-(-?\d+(?:\.\d+)?)$")
_TRUE = ("", "1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass(frozen=True)
class FilterSpec:
    name: str
    options: dict[str, Optional[str]] = field(default_factory=dict)


def parse_filter_spec(spec: str, known_names: Container[str] = ()) -> FilterSpec:
    parts = spec.split(":")
    name, rest = parts[0], parts[1:]
    if rest and f"{name}:{rest[0]}" in known_names:
        name = f"{name}:{rest[0]}"
        rest = rest[1:]

    options: dict[str, Optional[str]] = {}
    for i, item in enumerate(rest):
        if not item:
            continue
        key, sep, value = item.partition("=")
        if sep and key in URL_OPTIONS:
            options[key] = ":".join([value, *rest[i + 1:]])
            break
        options[key] = value if sep else None
    return FilterSpec(name=name, options=options)


def _check_range(arg: FilterArg, raw: str, value: Any) -> None:
    if not arg.min_max_enum:
        return
    if arg.enum_values:
        if raw not in arg.enum_values:
            raise ValueError(
                f"Invalid value {raw!r} for option {arg.name}, expected one of {arg.min_max_enum}"
            )
        return
    m = _MINMAX_RE.match(arg.min_max_enum)
    if m and not float(m.group(1)) <= float(value) <= float(m.group(2)):
        raise ValueError(f"Value {raw} for option {arg.name} out of range {arg.min_max_enum}")


def convert_arg(arg: FilterArg, raw: Optional[str]) -> Any:
    if arg.type is PropType.BOOL:
        text = (raw or "").lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"Invalid boolean {raw!r} for option {arg.name}")

    if raw is None:
        raise ValueError(f"Missing value for option {arg.name}")
    try:
        if arg.type is PropType.UINT:
            value: Any = int(raw)
            if value < 0:
                raise ValueError
        elif arg.type is PropType.SINT:
            value = int(raw)
        elif arg.type is PropType.FLOAT:
            value = float(raw)
        else:
            value = raw
    except ValueError:
        raise ValueError(f"Invalid {arg.type.value} value {raw!r} for option {arg.name}") from None
    _check_range(arg, raw, value)
    return value


def resolve_args(desc: FilterDescriptor, options: dict[str, Optional[str]]) -> dict[str, Any]:
    """Typed option values for *desc*, defaults filled in. Raises ValueError."""
    values: dict[str, Any] = {}
    for key, raw in options.items():
        arg = desc.arg(key)
        if arg is None and raw is None:
            # Enum options may be given by value alone: ":pbo" <=> ":mode=pbo"
            arg = next((a for a in desc.args if key in a.enum_values), None)
            if arg is not None:
                values[arg.name] = key
                continue
        if arg is None:
            raise ValueError(f"Unknown option {key} for filter {desc.name}")
        values[arg.name] = convert_arg(arg, raw)

    for arg in desc.args:
        if arg.name not in values:
            values[arg.name] = None if arg.default is None else convert_arg(arg, arg.default)
    return values
