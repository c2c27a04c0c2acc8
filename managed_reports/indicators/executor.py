"""
Indicator executor -- runs an AssembledQuery once and types the rows.

No retries: a store failure surfaces as QueryExecutionError.
"""
from __future__ import annotations

from typing import Any

from managed_reports.core.errors import QueryExecutionError
from managed_reports.core.logging import get_logger
from managed_reports.db.executor import PostgresStore, Store
from managed_reports.indicators.assembler import AssembledQuery
from managed_reports.indicators.rows import GroupKey, IndicatorRow, ResultRow

logger = get_logger(__name__)


def _to_group_key(row: dict[str, Any]) -> GroupKey:
    category = row.get("group_category")
    return GroupKey(
        year=int(row["group_year"]),
        category=int(category) if category is not None else None,
    )


def run_query(
    query: AssembledQuery,
    store: Store | None = None,
) -> list[IndicatorRow] | list[ResultRow]:
    """Execute *query* and return ``IndicatorRow``s, or ``ResultRow``s when grouped."""
    store = store or PostgresStore()
    try:
        raw = store.execute(query.sql, query.params)
    except QueryExecutionError:
        raise
    except Exception as exc:
        logger.exception("Indicator %s failed", query.indicator_id)
        raise QueryExecutionError(
            f"Indicator '{query.indicator_id}' failed: {exc}", sql=query.sql,
        ) from exc

    if query.grouped_by:
        return [
            ResultRow(group_id=_to_group_key(r), lookup_value=r["id"], total=int(r["total"]))
            for r in raw
        ]
    return [IndicatorRow(label=r["id"], total=int(r["total"])) for r in raw]
