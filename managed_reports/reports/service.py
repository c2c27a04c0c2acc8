"""
Report service -- orchestrates validate -> scope -> assemble -> safety -> execute -> shape.

Every request is all-or-nothing: a ValidationError is raised before any query
reaches the store, a QueryExecutionError propagates as-is.  A principal whose
scope denies everything gets an empty result, not an error.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

from managed_reports.core.errors import ValidationError
from managed_reports.core.logging import get_logger, log_duration
from managed_reports.db.executor import Store
from managed_reports.governance.rbac import AccessScope, Principal, resolve_scope
from managed_reports.governance.report_loader import load_report_model, ReportModel
from managed_reports.governance.sql_safety import check_sql_safety
from managed_reports.governance.validator import validate_request
from managed_reports.indicators.assembler import AssembledQuery, assemble_query
from managed_reports.indicators.executor import run_query
from managed_reports.indicators.rows import IndicatorRow, ResultRow
from managed_reports.insights.grouping import GroupedTable, build_insight_values
from managed_reports.lookups.locations import LOCATION_KEY, LocationResolver, LocationService
from managed_reports.lookups.resolver import CompositeResolver, LookupResolver, StaticLookupResolver

logger = get_logger(__name__)


@dataclass
class IndicatorResult:
    indicator_id: str
    query: AssembledQuery
    scope: AccessScope
    rows: list[IndicatorRow] | list[ResultRow] = field(default_factory=list)
    latency_ms: int = 0

    @property
    def grouped_by(self) -> str | None:
        return self.query.grouped_by


@dataclass
class InsightResult:
    result: IndicatorResult
    lookup_key: str
    table: GroupedTable


def build_indicator(
    indicator_id: str,
    principal: Principal,
    params: Mapping[str, Any] | None = None,
    as_of: date | None = None,
    grouped_by: str | None = None,
    store: Store | None = None,
    model: ReportModel | None = None,
) -> IndicatorResult:
    """Run one indicator for *principal* with the filters in *params*.

    Parameters
    ----------
    indicator_id : str
        Indicator name from the report layer (e.g. ``detention_status``).
    principal : Principal
        Acting user; only used for access scoping.
    params : mapping, optional
        Filter name -> value (``{"from": ..., "to": ...}`` for date ranges).
    as_of : date, optional
        "Current date" used by date-comparison classifications.
        Defaults to the database's CURRENT_DATE.
    grouped_by : str, optional
        ``year``, ``quarter`` or ``month`` to split counts by the indicator's date field.
    """
    if model is None:
        model = load_report_model()
    params = params or {}

    logger.info(
        "build_indicator | indicator=%s | user=%s | filters=%s | grouped_by=%s",
        indicator_id, principal.user_name, sorted(params), grouped_by,
    )

    errors = validate_request(indicator_id, params, grouped_by, model)
    if errors:
        logger.warning("Indicator request rejected: %s", errors)
        raise ValidationError(errors)

    indicator = model.indicator(indicator_id)
    scope = resolve_scope(principal, indicator_id, model.roles)

    with log_duration(logger, "indicator %s", indicator_id) as t:
        query = assemble_query(indicator, scope, params, model, as_of=as_of, grouped_by=grouped_by)

        safety_errors = check_sql_safety(query.sql, model)
        if safety_errors:
            raise ValidationError(safety_errors)

        rows = run_query(query, store)

    logger.info("Indicator %s returned %d rows in %d ms", indicator_id, len(rows), t["elapsed_ms"])
    return IndicatorResult(
        indicator_id=indicator_id,
        query=query,
        scope=scope,
        rows=rows,
        latency_ms=t["elapsed_ms"],
    )


def default_resolver(
    model: ReportModel,
    locale: str | None = None,
    store: Store | None = None,
) -> LookupResolver:
    """Report-layer labels, with location codes resolved to placenames."""
    return CompositeResolver(
        {LOCATION_KEY: LocationResolver(LocationService.instance(store), locale=locale)},
        default=StaticLookupResolver(model.lookups, locale=locale),
    )


def build_insight(
    indicator_id: str,
    principal: Principal,
    params: Mapping[str, Any] | None = None,
    as_of: date | None = None,
    grouped_by: str | None = None,
    resolver: LookupResolver | None = None,
    locale: str | None = None,
    store: Store | None = None,
    model: ReportModel | None = None,
) -> InsightResult:
    """Run an indicator and shape its rows into a ``GroupedTable``."""
    if model is None:
        model = load_report_model()

    result = build_indicator(
        indicator_id, principal, params,
        as_of=as_of, grouped_by=grouped_by, store=store, model=model,
    )
    lookup_key = model.indicator(indicator_id).lookup_key
    resolver = resolver or default_resolver(model, locale=locale, store=store)

    table = build_insight_values(
        result.rows,
        key=lookup_key,
        resolver=resolver,
        grouped_by=grouped_by,
        age_ranges=model.age_ranges,
    )
    return InsightResult(result=result, lookup_key=lookup_key, table=table)
