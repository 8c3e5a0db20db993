from .logger import setup_logging
from .numbers import to_num, clamp_pct, safe_div, labor_minutes_from_parts, split_labor_minutes

__all__ = [
    "setup_logging",
    "to_num",
    "clamp_pct",
    "safe_div",
    "labor_minutes_from_parts",
    "split_labor_minutes",
]
