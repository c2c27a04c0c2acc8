"""
Indicator query assembler -- turns an IndicatorDefinition into governed SQL.

The assembler reads joins, static predicates, the classification rule and
the accepted filters entirely from the report layer.  Caller-supplied values
reach the SQL only as bound parameters.

Query shape:

    SELECT [group columns,] subquery.status AS id, COUNT(subquery.id) AS total
    FROM (
      SELECT <count column> AS id, <classification> AS status [, group columns]
      FROM <base> JOIN ...
      WHERE <static> AND <scope> AND <filters>
    ) AS subquery
    GROUP BY [group columns,] subquery.status
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

from managed_reports.core.errors import ValidationError
from managed_reports.core.logging import get_logger
from managed_reports.governance.rbac import AccessScope
from managed_reports.governance.report_loader import (
    AS_OF_PLACEHOLDER,
    IndicatorDefinition,
    ReportModel,
)
from managed_reports.insights.comparators import GROUPINGS, YEAR, parse_age_range
from managed_reports.query.filters import build_filter_predicates, scope_fragment
from managed_reports.query.predicates import And, Bindings, StaticPredicate, render

logger = get_logger(__name__)


@dataclass(frozen=True)
class AssembledQuery:
    """An executable aggregation query plus its bound parameters."""
    indicator_id: str
    sql: str
    params: dict[str, Any] = field(default_factory=dict)
    grouped_by: str | None = None


# ── Classification ───────────────────────────────────────

def _classification_sql(
    indicator: IndicatorDefinition,
    model: ReportModel,
    bindings: Bindings,
    as_of: date | None,
) -> str:
    cls = indicator.classification

    if cls.kind == "cases":
        as_of_sql = "CURRENT_DATE" if as_of is None else bindings.bind("as_of", as_of)
        lines = ["CASE"]
        for case in cls.cases:
            when = case.when.strip().replace(AS_OF_PLACEHOLDER, as_of_sql)
            lines.append(f"      WHEN {when} THEN {bindings.bind('label', case.label)}")
        lines.append(f"      ELSE {bindings.bind('label', cls.else_label)}")
        lines.append("    END")
        return "\n".join(lines)

    if cls.kind == "age_ranges":
        if not model.age_ranges:
            raise ValidationError(f"Indicator '{indicator.id}' needs age_ranges in the report layer.")
        age = cls.age_field.sql()
        lines = ["CASE"]
        for label in model.age_ranges:
            lower, upper = parse_age_range(label)
            cond = f"{age} >= {bindings.bind('age_lower', lower)}"
            if upper is not None:
                cond += f" AND {age} <= {bindings.bind('age_upper', upper)}"
            lines.append(f"      WHEN {cond} THEN {bindings.bind('age_range', label)}")
        lines.append("    END")
        return "\n".join(lines)

    return cls.field.sql()


def _group_columns(indicator: IndicatorDefinition, grouped_by: str) -> list[str]:
    date_sql = indicator.date_field.sql()
    columns = [f"EXTRACT(YEAR FROM {date_sql})::integer AS group_year"]
    if grouped_by != YEAR:
        columns.append(f"EXTRACT({grouped_by.upper()} FROM {date_sql})::integer AS group_category")
    return columns


# ── Assembler ────────────────────────────────────────────

def assemble_query(
    indicator: IndicatorDefinition,
    scope: AccessScope,
    params: Mapping[str, Any] | None,
    model: ReportModel,
    as_of: date | None = None,
    grouped_by: str | None = None,
) -> AssembledQuery:
    """Build the aggregation query for *indicator* under *scope* and *params*.

    Filter predicates are emitted in the indicator's declared order, so the
    same filters in any key order yield byte-identical SQL and params.
    """
    if grouped_by is not None:
        if grouped_by not in GROUPINGS:
            raise ValidationError(
                f"Invalid grouping '{grouped_by}'. Allowed: {', '.join(GROUPINGS)}"
            )
        if not indicator.groupable:
            raise ValidationError(f"Indicator '{indicator.id}' cannot be grouped.")

    bindings = Bindings()
    classification = _classification_sql(indicator, model, bindings, as_of)

    # ── WHERE clause ─────────────────────────────────
    where = And.of(
        *(StaticPredicate(p) for p in indicator.static_predicates),
        scope_fragment(scope, indicator.scope_table),
        *build_filter_predicates(indicator, model, params),
        StaticPredicate(f"{indicator.date_field.sql()} IS NOT NULL") if grouped_by else None,
    )
    where_sql = render(where, bindings)

    # ── Inner SELECT ─────────────────────────────────
    inner_select = [f"{indicator.count_column} AS id", f"{classification} AS status"]
    if grouped_by:
        inner_select.extend(_group_columns(indicator, grouped_by))

    inner: list[str] = ["    SELECT", "    " + ",\n    ".join(inner_select)]
    inner.append(f"    FROM {indicator.base_table} AS {indicator.alias}")
    for join in indicator.joins:
        inner.append(f"    {join.join_type.upper()} JOIN {join.table} AS {join.alias} ON {join.on}")
    if where_sql:
        inner.append("    WHERE " + where_sql.replace("\n", "\n    "))

    # ── Outer aggregation ────────────────────────────
    group_cols: list[str] = []
    if grouped_by:
        group_cols.append("subquery.group_year")
        if grouped_by != YEAR:
            group_cols.append("subquery.group_category")
    group_cols.append("subquery.status")

    outer_select = group_cols[:-1] + ["subquery.status AS id", "COUNT(subquery.id) AS total"]

    sql_lines = ["SELECT " + ", ".join(outer_select), "FROM ("]
    sql_lines.extend(inner)
    sql_lines.append(") AS subquery")
    if indicator.classification.kind != "cases":
        sql_lines.append("WHERE subquery.status IS NOT NULL")
    sql_lines.append("GROUP BY " + ", ".join(group_cols))
    sql_lines.append("ORDER BY " + ", ".join(group_cols))

    sql = "\n".join(sql_lines)
    logger.info("Assembled SQL for indicator=%s:\n%s", indicator.id, sql)
    return AssembledQuery(
        indicator_id=indicator.id,
        sql=sql,
        params=dict(bindings.params),
        grouped_by=grouped_by,
    )
