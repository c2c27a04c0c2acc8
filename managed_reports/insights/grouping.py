"""
Result grouping / shaping pipeline.

Turns executor rows into a ``GroupedTable`` ready for a table or chart:

  - ungrouped: one row per bucket, a single ``total`` column
  - grouped by year: one column per year, ascending
  - grouped by quarter/month: one column per (year, category), years
    ascending, categories ascending inside each year

Rows are keyed by raw lookup value; a lookup value missing from a column
gets ``0`` in that cell.  Labels come from a ``LookupResolver``.  Rows are
ordered alphabetically by label, except for the ``age`` key which follows
the age-range ordering.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from managed_reports.indicators.rows import GroupKey, IndicatorRow, ResultRow
from managed_reports.insights.comparators import (
    GROUPINGS,
    YEAR,
    age_range_key,
    group_key_for,
    year_key,
)
from managed_reports.lookups.resolver import LookupResolver

AGE_KEY = "age"
TOTAL_COLUMN = "total"


@dataclass
class TableRow:
    label: str
    values: list[int]
    colspan: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label, "values": list(self.values), "colspan": self.colspan}


@dataclass
class GroupedTable:
    """Ordered rows; every row has exactly ``len(columns)`` cells."""
    columns: list[str] = field(default_factory=list)
    rows: list[TableRow] = field(default_factory=list)

    @property
    def columns_number(self) -> int:
        return len(self.columns)

    def is_empty(self) -> bool:
        return not self.rows

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": list(self.columns),
            "rows": [r.to_dict() for r in self.rows],
        }


def _as_result_rows(data: Iterable[IndicatorRow | ResultRow]) -> list[ResultRow]:
    rows: list[ResultRow] = []
    for item in data:
        if isinstance(item, IndicatorRow):
            rows.append(ResultRow(group_id=None, lookup_value=item.label, total=item.total))
        else:
            rows.append(item)
    return rows


def _ordered_groups(rows: list[ResultRow], grouped_by: str) -> list[GroupKey]:
    groups = {r.group_id for r in rows}
    if None in groups:
        raise ValueError(f"Rows without a group id cannot be grouped by {grouped_by}")
    if grouped_by == YEAR:
        return sorted(groups, key=lambda g: year_key(g.year))
    category_key = group_key_for(grouped_by)
    return sorted(
        groups,
        key=lambda g: (year_key(g.year), category_key(g.category) if g.category is not None else 0),
    )


def _build_grouped_rows(
    rows: list[ResultRow],
    key: str,
    resolver: LookupResolver,
    grouped_by: str,
) -> GroupedTable:
    groups = _ordered_groups(rows, grouped_by)
    column_index = {g: i for i, g in enumerate(groups)}

    cells: dict[Any, list[int]] = {}
    for row in rows:
        values = cells.setdefault(row.lookup_value, [0] * len(groups))
        values[column_index[row.group_id]] += int(row.total)

    return GroupedTable(
        columns=[g.label(grouped_by) for g in groups],
        rows=[
            TableRow(label=resolver.resolve(key, value), values=values)
            for value, values in cells.items()
        ],
    )


def _build_single_rows(rows: list[ResultRow], key: str, resolver: LookupResolver) -> GroupedTable:
    return GroupedTable(
        columns=[TOTAL_COLUMN],
        rows=[TableRow(label=resolver.resolve(key, r.lookup_value), values=[int(r.total)]) for r in rows],
    )


def sort_rows(table: GroupedTable, key: str, age_ranges: list[str] | None = None) -> GroupedTable:
    if key == AGE_KEY:
        age_key = age_range_key(age_ranges)
        table.rows.sort(key=lambda r: age_key(r.label))
    else:
        table.rows.sort(key=lambda r: r.label)
    return table


def build_insight_values(
    data: Iterable[IndicatorRow | ResultRow] | None,
    key: str,
    resolver: LookupResolver,
    grouped_by: str | None = None,
    age_ranges: list[str] | None = None,
) -> GroupedTable:
    """Shape indicator rows into a ``GroupedTable``.

    Parameters
    ----------
    data:
        Executor output.  Empty or None yields an empty table.
    key:
        Lookup key used for label resolution (``"age"`` switches the ordering).
    resolver:
        Maps ``(key, raw_value)`` to a display label.
    grouped_by:
        ``year``, ``quarter``, ``month`` or None for a single total column.
    age_ranges:
        Configured age ranges, in display order.
    """
    rows = _as_result_rows(data or [])
    if not rows:
        return GroupedTable()

    if grouped_by:
        if grouped_by not in GROUPINGS:
            raise ValueError(f"Invalid grouping '{grouped_by}'. Allowed: {', '.join(GROUPINGS)}")
        table = _build_grouped_rows(rows, key, resolver, grouped_by)
    else:
        table = _build_single_rows(rows, key, resolver)

    return sort_rows(table, key, age_ranges)
