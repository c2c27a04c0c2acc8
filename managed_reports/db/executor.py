"""
Read-only SQL executor.

Indicator queries run through `execute_readonly`, which:
  1. Opens a READ ONLY transaction (Postgres-enforced)
  2. Passes caller values as bound parameters, never as SQL text
  3. Converts Decimal/date/datetime to JSON-safe Python types
  4. Enforces query timeout (statement_timeout)

Any SQLAlchemy failure is re-raised as `QueryExecutionError` with the
original exception chained.
"""
from __future__ import annotations

import decimal
import datetime
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from managed_reports.core.errors import QueryExecutionError
from managed_reports.db.connection import readonly_connection
from managed_reports.core.logging import get_logger

logger = get_logger(__name__)


class Store(Protocol):
    """Anything that can run a parameterised SELECT and return dict rows."""

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        ...


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    return val


def execute_readonly(
    sql: str,
    params: dict | None = None,
    timeout_ms: int | None = None,
    engine: Engine | None = None,
) -> list[dict[str, Any]]:
    """Execute a read-only SQL query and return rows as serialisable dicts.

    Raises
    ------
    QueryExecutionError
        If the store rejects or fails the query.
    """
    logger.info("Executing SQL (%d chars, %d params)", len(sql), len(params or {}))

    try:
        with readonly_connection(engine, timeout_ms=timeout_ms) as conn:
            result = conn.execute(text(sql), params or {})
            columns = list(result.keys())
            rows = [
                {col: _serialise_value(val) for col, val in zip(columns, row)}
                for row in result.fetchall()
            ]
    except SQLAlchemyError as exc:
        logger.exception("SQL execution failed")
        raise QueryExecutionError(f"Query execution failed: {exc}", sql=sql) from exc

    logger.info("Returned %d rows", len(rows))
    return rows


class PostgresStore:
    """Default store: the shared engine, read-only, with a statement timeout."""

    def __init__(self, engine: Engine | None = None, timeout_ms: int | None = None):
        self._engine = engine
        self._timeout_ms = timeout_ms

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return execute_readonly(sql, params, timeout_ms=self._timeout_ms, engine=self._engine)
