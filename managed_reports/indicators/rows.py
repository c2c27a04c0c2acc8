"""
Result row types produced by the indicator executor.
"""
from __future__ import annotations

from typing import Any, NamedTuple


class GroupKey(NamedTuple):
    """Column key of a grouped indicator: a year, or a year plus quarter/month."""
    year: int
    category: int | None = None

    def label(self, grouped_by: str | None = None) -> str:
        if self.category is None:
            return str(self.year)
        if grouped_by == "quarter":
            return f"{self.year}-Q{self.category}"
        return f"{self.year}-{self.category:02d}"


class IndicatorRow(NamedTuple):
    """One bucket of an ungrouped indicator."""
    label: Any
    total: int


class ResultRow(NamedTuple):
    """One bucket of an indicator: ``group_id`` is None when ungrouped."""
    group_id: GroupKey | None
    lookup_value: Any
    total: int
