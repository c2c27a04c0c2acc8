"""
Unit tests -- result grouping / shaping pipeline.
"""
import pytest

from managed_reports.indicators.rows import GroupKey, IndicatorRow, ResultRow
from managed_reports.insights.grouping import GroupedTable, TableRow, build_insight_values
from managed_reports.lookups.resolver import IdentityResolver, StaticLookupResolver

IDENTITY = IdentityResolver()


def _labels(table):
    return [r.label for r in table.rows]


# ── Empty input ──────────────────────────────────────────

@pytest.mark.parametrize("data", [None, []])
def test_empty_input_empty_table(data):
    table = build_insight_values(data, "violation_type", IDENTITY, grouped_by="year")
    assert table == GroupedTable()
    assert table.is_empty()
    assert table.rows == []


# ── Ungrouped ────────────────────────────────────────────

def test_ungrouped_one_row_per_tuple():
    data = [IndicatorRow("maiming", 3), IndicatorRow("killing", 5)]
    table = build_insight_values(data, "violation_type", IDENTITY)
    assert table.columns == ["total"]
    assert table.rows == [TableRow("killing", [5]), TableRow("maiming", [3])]


def test_detention_status_rows():
    data = [IndicatorRow("detention_released", 1), IndicatorRow("detention_detained", 1)]
    table = build_insight_values(data, "detention_status", IDENTITY)
    assert table.to_dict() == {
        "columns": ["total"],
        "rows": [
            {"label": "detention_detained", "values": [1], "colspan": 0},
            {"label": "detention_released", "values": [1], "colspan": 0},
        ],
    }


def test_labels_resolved():
    resolver = StaticLookupResolver(
        {"detention_status": {"detention_released": {"en": "Released"}, "detention_detained": {"en": "Detained"}}},
        locale="en",
    )
    data = [IndicatorRow("detention_released", 2), IndicatorRow("detention_detained", 1)]
    table = build_insight_values(data, "detention_status", resolver)
    assert _labels(table) == ["Detained", "Released"]
    assert table.rows[1].values == [2]


# ── Grouped by year ──────────────────────────────────────

def test_zero_fill_missing_cells():
    data = [
        ResultRow(GroupKey(2020), "killing", 3),
        ResultRow(GroupKey(2020), "maiming", 1),
        ResultRow(GroupKey(2021), "killing", 2),
    ]
    table = build_insight_values(data, "violation_type", IDENTITY, grouped_by="year")
    assert table.columns == ["2020", "2021"]
    assert table.rows == [TableRow("killing", [3, 2]), TableRow("maiming", [1, 0])]


def test_years_sorted_ascending():
    data = [
        ResultRow(GroupKey(2022), "killing", 1),
        ResultRow(GroupKey(2019), "killing", 2),
        ResultRow(GroupKey(2021), "killing", 3),
    ]
    table = build_insight_values(data, "violation_type", IDENTITY, grouped_by="year")
    assert table.columns == ["2019", "2021", "2022"]
    assert table.rows[0].values == [2, 3, 1]


def test_row_and_column_counts():
    data = [
        ResultRow(GroupKey(2020), "a", 1),
        ResultRow(GroupKey(2021), "b", 1),
        ResultRow(GroupKey(2022), "c", 1),
        ResultRow(GroupKey(2022), "a", 1),
    ]
    table = build_insight_values(data, "k", IDENTITY, grouped_by="year")
    assert len(table.rows) == 3
    assert table.columns_number == 3
    assert all(len(r.values) == table.columns_number for r in table.rows)


def test_duplicate_cells_summed():
    data = [ResultRow(GroupKey(2020), "a", 1), ResultRow(GroupKey(2020), "a", 4)]
    table = build_insight_values(data, "k", IDENTITY, grouped_by="year")
    assert table.rows == [TableRow("a", [5])]


def test_missing_group_id_rejected():
    with pytest.raises(ValueError):
        build_insight_values([IndicatorRow("a", 1)], "k", IDENTITY, grouped_by="year")


def test_unknown_grouping_rejected():
    with pytest.raises(ValueError, match="Invalid grouping"):
        build_insight_values([ResultRow(GroupKey(2020), "a", 1)], "k", IDENTITY, grouped_by="week")


# ── Composite grouping ───────────────────────────────────

def test_month_columns_year_then_month():
    data = [
        ResultRow(GroupKey(2021, 1), "a", 1),
        ResultRow(GroupKey(2020, 12), "a", 2),
        ResultRow(GroupKey(2020, 2), "b", 3),
    ]
    table = build_insight_values(data, "k", IDENTITY, grouped_by="month")
    assert table.columns == ["2020-02", "2020-12", "2021-01"]
    assert table.rows == [TableRow("a", [0, 2, 1]), TableRow("b", [3, 0, 0])]


def test_quarter_columns():
    data = [ResultRow(GroupKey(2020, 3), "a", 1), ResultRow(GroupKey(2020, 1), "a", 2)]
    table = build_insight_values(data, "k", IDENTITY, grouped_by="quarter")
    assert table.columns == ["2020-Q1", "2020-Q3"]
    assert table.rows[0].values == [2, 1]


# ── Ordering ─────────────────────────────────────────────

def test_age_rows_ordered_by_range():
    data = [IndicatorRow("18-25", 1), IndicatorRow("0-5", 2), IndicatorRow("6-17", 3)]
    table = build_insight_values(data, "age", IDENTITY)
    assert _labels(table) == ["0-5", "6-17", "18-25"]


def test_non_age_rows_alphabetical():
    data = [IndicatorRow("18-25", 1), IndicatorRow("0-5", 2), IndicatorRow("6-17", 3)]
    table = build_insight_values(data, "violation_type", IDENTITY)
    assert _labels(table) == ["0-5", "18-25", "6-17"]


def test_age_rows_follow_configured_ranges():
    configured = ["0 - 5", "6 - 11", "12 - 17", "18+"]
    data = [
        ResultRow(GroupKey(2020), "18+", 1),
        ResultRow(GroupKey(2020), "12 - 17", 1),
        ResultRow(GroupKey(2021), "0 - 5", 1),
    ]
    table = build_insight_values(data, "age", IDENTITY, grouped_by="year", age_ranges=configured)
    assert _labels(table) == ["0 - 5", "12 - 17", "18+"]
    assert table.rows[0].values == [0, 1]


# ── Round trip ───────────────────────────────────────────

def test_single_group_reproduces_totals():
    data = [IndicatorRow("killing", 5), IndicatorRow("maiming", 3), IndicatorRow("abduction", 1)]
    flat = build_insight_values(data, "violation_type", IDENTITY)

    regrouped_input = [ResultRow(GroupKey(2024), r.label, r.values[0]) for r in flat.rows]
    regrouped = build_insight_values(regrouped_input, "violation_type", IDENTITY, grouped_by="year")

    assert [(r.label, r.values) for r in regrouped.rows] == [(r.label, r.values) for r in flat.rows]
