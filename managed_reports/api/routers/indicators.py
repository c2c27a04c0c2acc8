"""GET /indicators, POST /indicators/{id}, POST /indicators/{id}/insight."""
from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends

from managed_reports.db.executor import PostgresStore, Store
from managed_reports.governance.rbac import Principal
from managed_reports.governance.report_loader import load_report_model
from managed_reports.reports.service import build_indicator, build_insight

router = APIRouter()


def get_store() -> Store:
    return PostgresStore()



class IndicatorRequest(BaseModel):
    principal: Principal
    filters: dict[str, Any] = Field(default_factory=dict, description="Filter name -> value")
    grouped_by: str | None = Field(None, description="year | quarter | month")
    as_of: datetime.date | None = Field(None, description="Reference date for status classification")
    locale: str | None = None


class IndicatorRowResponse(BaseModel):
    group_id: str | None = None
    id: Any
    total: int


class IndicatorResponse(BaseModel):
    indicator_id: str
    grouped_by: str | None
    rows: list[IndicatorRowResponse]
    latency_ms: int


class TableRowResponse(BaseModel):
    label: str
    values: list[int]
    colspan: int


class InsightResponse(BaseModel):
    indicator_id: str
    lookup_key: str
    grouped_by: str | None
    columns: list[str]
    rows: list[TableRowResponse]
    latency_ms: int



@router.get("")
def list_indicators() -> dict:
    """Return indicator ids (lightweight)."""
    return {"indicators": load_report_model().get_indicator_ids()}


@router.post("/{indicator_id}", response_model=IndicatorResponse)
def indicator_endpoint(indicator_id: str, req: IndicatorRequest, store: Store = Depends(get_store)):
    """Raw aggregation rows for one indicator."""
    result = build_indicator(
        indicator_id, req.principal, req.filters,
        as_of=req.as_of, grouped_by=req.grouped_by, store=store,
    )
    rows = []
    for row in result.rows:
        if result.grouped_by:
            rows.append(IndicatorRowResponse(
                group_id=row.group_id.label(result.grouped_by), id=row.lookup_value, total=row.total,
            ))
        else:
            rows.append(IndicatorRowResponse(id=row.label, total=row.total))
    return IndicatorResponse(
        indicator_id=indicator_id,
        grouped_by=result.grouped_by,
        rows=rows,
        latency_ms=result.latency_ms,
    )


@router.post("/{indicator_id}/insight", response_model=InsightResponse)
def insight_endpoint(indicator_id: str, req: IndicatorRequest, store: Store = Depends(get_store)):
    """Indicator rows shaped into a labelled, zero-filled table."""
    insight = build_insight(
        indicator_id, req.principal, req.filters,
        as_of=req.as_of, grouped_by=req.grouped_by, locale=req.locale, store=store,
    )
    return InsightResponse(
        indicator_id=indicator_id,
        lookup_key=insight.lookup_key,
        grouped_by=insight.result.grouped_by,
        columns=insight.table.columns,
        rows=[TableRowResponse(**r.to_dict()) for r in insight.table.rows],
        latency_ms=insight.result.latency_ms,
    )
