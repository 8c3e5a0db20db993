"""
Draft-safe numeric helpers.

Editors hand the engine half-typed values ("", "12.", None, "abc").
Everything here falls back to a default instead of raising.
"""

from __future__ import annotations

import math
from typing import Any


def to_num(value: Any, default: float = 0.0) -> float:
    """Parse ``value`` as a finite float, returning ``default`` otherwise."""
    if value is None:
        return float(default)
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return float(default)
    try:
        n = float(value)
    except (TypeError, ValueError):
        return float(default)
    return n if math.isfinite(n) else float(default)


def clamp_pct(value: Any, default: float = 0.0) -> float:
    """Coerce to a percentage within 0..100."""
    n = to_num(value, default)
    return max(0.0, min(100.0, n))


def safe_div(numerator: float, denominator: float) -> float:
    """Division that yields 0 for a non-positive denominator."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def labor_minutes_from_parts(hours: Any, minutes: Any) -> float:
    """
    Combine editor hours/minutes fields into total minutes.

    When hours > 0 the minutes field is the remainder; otherwise the
    minutes field already holds the total.
    """
    h = max(0.0, to_num(hours))
    m = max(0.0, to_num(minutes))
    if h > 0:
        return h * 60 + m
    return m


def split_labor_minutes(total_minutes: Any) -> tuple[int, int]:
    """Split total minutes into (hours, remainder minutes) for display."""
    mins = max(0, int(math.floor(to_num(total_minutes))))
    return mins // 60, mins % 60
