"""
Error taxonomy for the report pipeline.

A request either produces a complete result or raises one of these; there is
no partial output.  An access scope that denies everything is *not* an error:
it renders as an always-false predicate and the caller gets an empty result.
"""
from __future__ import annotations


class ReportError(Exception):
    """Base class for all report pipeline errors."""


class ValidationError(ReportError):
    """Malformed request: unknown indicator or filter, unparseable date, unsafe SQL.

    Raised before any query reaches the store.
    """

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class QueryExecutionError(ReportError):
    """The store failed to run an assembled query (connectivity, syntax, timeout)."""

    def __init__(self, message: str, sql: str = ""):
        self.sql = sql
        super().__init__(message)
