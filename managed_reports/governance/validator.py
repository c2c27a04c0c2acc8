"""
Validates an indicator request against the report layer.

Checks performed:
  1. Indicator exists
  2. Filters are given as a mapping
  3. Every filter name is accepted by the indicator
  4. Date-range filters parse and have from <= to
  5. Equality filters are single scalar values
  6. Grouping is one of year / quarter / month, and the indicator has a date
     field to group on
"""
from __future__ import annotations

from typing import Any, Mapping

from managed_reports.core.errors import ValidationError
from managed_reports.governance.report_loader import load_report_model, ReportModel
from managed_reports.insights.comparators import GROUPINGS
from managed_reports.query.filters import (
    FILTER_DATE_RANGE,
    date_range_fragment,
    equality_fragment,
)


def validate_request(
    indicator_id: str,
    params: Any = None,
    grouped_by: str | None = None,
    model: ReportModel | None = None,
) -> list[str]:
    """Return a list of validation error messages (empty list = request is valid)."""
    if model is None:
        model = load_report_model()

    errors: list[str] = []

    indicator = model.indicator(indicator_id)
    if indicator is None:
        errors.append(
            f"Unknown indicator '{indicator_id}'. "
            f"Allowed: {', '.join(model.get_indicator_ids())}"
        )
        return errors  # can't do further validation

    if params is None:
        params = {}
    if not isinstance(params, Mapping):
        errors.append("Filters must be an object mapping filter names to values.")
        return errors

    for name, value in params.items():
        if name not in indicator.filters:
            errors.append(
                f"Unknown filter '{name}' for indicator '{indicator_id}'. "
                f"Allowed: {', '.join(indicator.filters)}"
            )
            continue
        definition = model.filter(name)
        try:
            if definition.type == FILTER_DATE_RANGE:
                date_range_fragment(value, definition.column, name)
            else:
                equality_fragment(value, definition.column, name)
        except ValidationError as exc:
            errors.extend(exc.errors)

    if grouped_by:
        if grouped_by not in GROUPINGS:
            errors.append(
                f"Invalid grouping '{grouped_by}'. Allowed: {', '.join(GROUPINGS)}"
            )
        elif not indicator.groupable:
            errors.append(f"Indicator '{indicator_id}' has no date field and cannot be grouped.")

    return errors
