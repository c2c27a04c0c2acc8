"""
Filter predicate builders.

Each builder turns one user-supplied filter value into a predicate, or into
``None`` when the value is absent or empty.  ``None`` means "no constraint",
never ``column IS NULL``.
"""
from __future__ import annotations

import math
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Mapping

from managed_reports.core.errors import ValidationError
from managed_reports.query.predicates import (
    DateRange,
    Equality,
    JsonField,
    Predicate,
    ScopePredicate,
)

if TYPE_CHECKING:
    from managed_reports.governance.rbac import AccessScope
    from managed_reports.governance.report_loader import IndicatorDefinition, ReportModel

FILTER_DATE_RANGE = "date_range"
FILTER_EQUALITY = "equality"
FILTER_TYPES = (FILTER_DATE_RANGE, FILTER_EQUALITY)
DATE_RANGE_KEYS = ("from", "to")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple, set, dict)) and not value:
        return True
    return False


def parse_date(value: Any, filter_name: str = "date") -> date | None:
    """Parse an ISO date (or datetime) value; empty values give None."""
    if _is_empty(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise ValidationError(f"Filter '{filter_name}' has an unparseable date: {value!r}")


def date_range_fragment(value: Any, column: JsonField, name: str = "date") -> DateRange | None:
    """``column >= from`` and/or ``column <= to``; a missing bound is omitted."""
    if _is_empty(value):
        return None
    if not isinstance(value, Mapping):
        raise ValidationError(f"Filter '{name}' must be an object with 'from' and/or 'to'.")
    extra = sorted(str(k) for k in value if k not in DATE_RANGE_KEYS)
    if extra:
        raise ValidationError(
            f"Filter '{name}' has unknown date range keys: {', '.join(extra)}. Use 'from' and/or 'to'."
        )

    start = parse_date(value.get("from"), name)
    end = parse_date(value.get("to"), name)
    if start is None and end is None:
        return None
    if start is not None and end is not None and start > end:
        raise ValidationError(f"Filter '{name}' has 'from' ({start}) after 'to' ({end}).")
    return DateRange(column=column, start=start, end=end, name=name)


def equality_fragment(value: Any, column: JsonField, name: str = "value") -> Equality | None:
    """``column = value``; booleans compare against the JSONB text 'true'/'false'."""
    if _is_empty(value):
        return None
    if isinstance(value, bool):
        return Equality(column=column, value="true" if value else "false", name=name)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"Filter '{name}' expects a finite number, got {value!r}.")
        # JSONB renders the number 1 as '1', never '1.0'
        text = str(int(value)) if value.is_integer() else repr(value)
        return Equality(column=column, value=text, name=name)
    if isinstance(value, (str, int)):
        return Equality(column=column, value=str(value), name=name)
    raise ValidationError(f"Filter '{name}' expects a single value, got {type(value).__name__}.")


def scope_fragment(scope: "AccessScope", table_alias: str) -> ScopePredicate | None:
    """Restrict rows to what *scope* may see; None when it may see everything."""
    if scope.is_unrestricted:
        return None
    return ScopePredicate(table=table_alias, scope=scope.level, values=tuple(scope.values))


def build_filter_predicates(
    indicator: "IndicatorDefinition",
    model: "ReportModel",
    params: Mapping[str, Any] | None,
) -> list[Predicate]:
    """Predicates for every non-empty filter in *params*.

    Iterates the indicator's declared filters, not *params*, so the output
    order is independent of the order the caller supplied filters in.
    """
    params = params or {}

    unknown = sorted(k for k in params if k not in indicator.filters)
    if unknown:
        raise ValidationError([
            f"Unknown filter '{k}' for indicator '{indicator.id}'. "
            f"Allowed: {', '.join(indicator.filters)}"
            for k in unknown
        ])

    predicates: list[Predicate] = []
    for filter_name in indicator.filters:
        if filter_name not in params:
            continue
        definition = model.filter(filter_name)
        value = params[filter_name]
        if definition.type == FILTER_DATE_RANGE:
            fragment = date_range_fragment(value, definition.column, filter_name)
        else:
            fragment = equality_fragment(value, definition.column, filter_name)
        if fragment is not None:
            predicates.append(fragment)
    return predicates
