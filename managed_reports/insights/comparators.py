"""
Orderings used when shaping indicator results into tables.

  - years ascending
  - categories inside a year (quarter 1-4, month 1-12)
  - age ranges by configured position, then by numeric lower bound
"""
from __future__ import annotations

import re
from typing import Callable

YEAR = "year"
QUARTER = "quarter"
MONTH = "month"
GROUPINGS = (YEAR, QUARTER, MONTH)

_CATEGORY_BOUNDS = {QUARTER: (1, 4), MONTH: (1, 12)}

_AGE_RANGE_RE = re.compile(r"^\s*(\d+)\s*(?:(?:-|to)\s*(\d+)|(\+))\s*$")


def year_key(year: int | str) -> int:
    return int(year)


def group_key_for(grouped_by: str) -> Callable[[int | str], int]:
    """Sort key for categories within one year under *grouped_by*."""
    if grouped_by not in _CATEGORY_BOUNDS:
        raise ValueError(f"No category ordering for grouping '{grouped_by}'")
    low, high = _CATEGORY_BOUNDS[grouped_by]

    def key(category: int | str) -> int:
        value = int(category)
        if not low <= value <= high:
            raise ValueError(f"{grouped_by} out of range: {category!r}")
        return value

    return key


def parse_age_range(label: str) -> tuple[int, int | None]:
    """``"6-17"`` → (6, 17), ``"18+"`` → (18, None)."""
    m = _AGE_RANGE_RE.match(str(label))
    if not m:
        raise ValueError(f"Malformed age range: {label!r}")
    lower = int(m.group(1))
    upper = int(m.group(2)) if m.group(2) is not None else None
    if upper is not None and upper < lower:
        raise ValueError(f"Age range upper bound below lower bound: {label!r}")
    return lower, upper


def age_range_key(age_ranges: list[str] | None = None) -> Callable[[str], tuple]:
    """Sort key placing known ranges in configured order, the rest by lower bound."""
    positions = {label: i for i, label in enumerate(age_ranges or [])}

    def key(label: str) -> tuple:
        if label in positions:
            return (0, positions[label], 0, label)
        try:
            lower, _ = parse_age_range(label)
        except ValueError:
            # Unparseable labels (e.g. "Unknown") go last, alphabetically
            return (2, 0, 0, label)
        return (1, 0, lower, label)

    return key
