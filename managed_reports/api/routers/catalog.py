"""
GET /catalog -- report layer metadata.
"""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from managed_reports.governance.report_loader import load_report_model
from managed_reports.insights.comparators import GROUPINGS

router = APIRouter()



class IndicatorItem(BaseModel):
    id: str
    description: str
    lookup_key: str
    filters: list[str]
    groupable: bool


class FilterItem(BaseModel):
    name: str
    type: str


class CatalogResponse(BaseModel):
    indicators: list[IndicatorItem]
    filters: list[FilterItem]
    age_ranges: list[str]
    groupings: list[str]



@router.get("/catalog", response_model=CatalogResponse)
def full_catalog() -> CatalogResponse:
    """Return the complete report-layer catalog."""
    model = load_report_model()
    return CatalogResponse(
        indicators=[IndicatorItem(**i) for i in model.get_indicators_list()],
        filters=[FilterItem(name=f.name, type=f.type) for f in model.filters.values()],
        age_ranges=model.age_ranges,
        groupings=list(GROUPINGS),
    )
