"""
Shared utility functions for parsing and data manipulation

Provides common helpers for:
- Config parsing: Lenient bool/int/float conversion with fallback defaults
- Host handling: File-name suffixes derived from device hosts
- Value coercion: Clamping device-reported levels into a range

The OpenWebIf API and hand-written JSON configs both mix strings and native
JSON types for the same fields, so every helper accepts either.
"""

from __future__ import annotations

from typing import Any


def host_suffix(host: str) -> str:
    """Strip separators from a host so it can be used in file names."""
    return host.replace(".", "").replace(":", "").replace("/", "")


def parse_bool(value: Any, default: bool = False) -> bool:
    """Interpret JSON/env-style booleans."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: Any, default: int) -> int:
    """Best-effort int parser with fallback."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def parse_float(value: Any, default: float) -> float:
    """Best-effort float parser with fallback."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


def strip_or_none(value: Any) -> str | None:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None
