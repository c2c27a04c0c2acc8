"""
Unit tests -- report service: validate, scope, assemble, execute, shape.
Uses an in-memory store so no DB connection is needed.
"""
from datetime import date

import pytest

from managed_reports.core.errors import QueryExecutionError, ValidationError
from managed_reports.governance.rbac import Principal
from managed_reports.indicators.rows import IndicatorRow
from managed_reports.lookups.cache import get_cache
from managed_reports.reports.service import (
    IndicatorResult,
    InsightResult,
    build_indicator,
    build_insight,
)

DETENTION_ROWS = [
    {"id": "detention_detained", "total": 1},
    {"id": "detention_released", "total": 1},
]


def test_build_indicator_result(fake_store, admin, model):
    store = fake_store(DETENTION_ROWS)
    result = build_indicator("detention_status", admin, {}, as_of=date(2024, 1, 1), store=store, model=model)
    assert isinstance(result, IndicatorResult)
    assert result.rows == [IndicatorRow("detention_detained", 1), IndicatorRow("detention_released", 1)]
    assert result.scope.is_unrestricted
    assert result.latency_ms >= 0


def test_query_sent_to_store(fake_store, admin, model):
    store = fake_store(DETENTION_ROWS)
    result = build_indicator("detention_status", admin, {"ctfmr_verified": True}, store=store, model=model)
    sql, params = store.calls[0]
    assert sql == result.query.sql
    assert params["ctfmr_verified"] == "true"


@pytest.mark.parametrize("indicator_id,params", [
    ("nope", {}),
    ("detention_status", {"status": "open"}),
    ("detention_status", {"incident_date": {"from": "31/12/2023"}}),
])
def test_validation_error_before_query(fake_store, admin, model, indicator_id, params):
    store = fake_store(DETENTION_ROWS)
    with pytest.raises(ValidationError) as excinfo:
        build_indicator(indicator_id, admin, params, store=store, model=model)
    assert excinfo.value.errors
    assert store.calls == []


def test_invalid_grouping_rejected(fake_store, admin, model):
    store = fake_store()
    with pytest.raises(ValidationError, match="Invalid grouping"):
        build_indicator("detention_status", admin, grouped_by="decade", store=store, model=model)
    assert store.calls == []


def test_denied_scope_returns_empty(fake_store, model):
    store = fake_store([])
    guest = Principal(user_name="visitor", role="guest")
    result = build_indicator("detention_status", guest, {}, store=store, model=model)
    assert result.scope.is_denied
    assert result.rows == []
    assert "FALSE" in store.calls[0][0]


def test_worker_scoped_to_self(fake_store, model):
    store = fake_store([])
    worker = Principal(user_name="worker1", role="mrm_worker")
    build_indicator("detention_status", worker, {}, store=store, model=model)
    sql, params = store.calls[0]
    assert "associated_user_names" in sql
    assert params["scope_self"] == "worker1"


def test_store_failure_propagates(fake_store, admin, model):
    store = fake_store(error=RuntimeError("connection refused"))
    with pytest.raises(QueryExecutionError):
        build_indicator("detention_status", admin, {}, store=store, model=model)


# ── Insights ─────────────────────────────────────────────

def test_build_insight_labels(fake_store, admin, model):
    insight = build_insight("detention_status", admin, {}, store=fake_store(DETENTION_ROWS), model=model, locale="en")
    assert isinstance(insight, InsightResult)
    assert insight.lookup_key == "detention_status"
    assert [(r.label, r.values) for r in insight.table.rows] == [("Detained", [1]), ("Released", [1])]


def test_build_insight_locale(fake_store, admin, model):
    insight = build_insight("detention_status", admin, {}, store=fake_store(DETENTION_ROWS), model=model, locale="fr")
    assert [r.label for r in insight.table.rows] == ["Détenu", "Libéré"]


def test_build_insight_empty(fake_store, admin, model):
    insight = build_insight("detention_status", admin, {}, store=fake_store([]), model=model)
    assert insight.table.rows == []


def test_build_insight_grouped_age(fake_store, admin, model):
    rows = [
        {"group_year": 2023, "id": "18+", "total": 2},
        {"group_year": 2022, "id": "6 - 11", "total": 1},
        {"group_year": 2023, "id": "0 - 5", "total": 4},
    ]
    insight = build_insight("individual_age", admin, {}, grouped_by="year", store=fake_store(rows), model=model)
    assert insight.table.columns == ["2022", "2023"]
    assert [(r.label, r.values) for r in insight.table.rows] == [
        ("0 - 5", [0, 4]),
        ("6 - 11", [1, 0]),
        ("18+", [0, 2]),
    ]


class LocationAwareStore:
    """Answers the indicator query with canned rows and the location queries from a table."""

    def __init__(self, rows, locations):
        self.rows = rows
        self.locations = locations

    def execute(self, sql, params=None):
        if "MAX(id)" in sql:
            return [{"max_id": max(loc["id"] for loc in self.locations)}]
        if "FROM locations" in sql:
            return [dict(loc) for loc in self.locations]
        return [dict(r) for r in self.rows]


@pytest.fixture
def clean_cache():
    get_cache().invalidate()
    yield
    get_cache().invalidate()


def test_build_insight_location_placenames(admin, model, clean_cache):
    store = LocationAwareStore(
        rows=[{"id": "IQ01", "total": 2}, {"id": "IQ02", "total": 1}, {"id": "XX99", "total": 1}],
        locations=[
            {"id": 1, "location_code": "IQ01", "admin_level": 1, "hierarchy_path": "IQ.IQ01",
             "placename_i18n": {"en": "Baghdad", "fr": "Bagdad"}},
            {"id": 2, "location_code": "IQ02", "admin_level": 1, "hierarchy_path": "IQ.IQ02",
             "placename_i18n": {"en": "Basra"}},
        ],
    )
    insight = build_insight("incident_location", admin, {}, store=store, model=model, locale="fr")
    assert insight.lookup_key == "location"
    assert [(r.label, r.values) for r in insight.table.rows] == [
        ("Bagdad", [2]),
        ("Basra", [1]),
        ("XX99", [1]),
    ]


def test_non_location_keys_keep_report_layer_labels(fake_store, admin, model, clean_cache):
    store = fake_store(DETENTION_ROWS)
    insight = build_insight("detention_status", admin, {}, store=store, model=model)
    assert [r.label for r in insight.table.rows] == ["Detained", "Released"]
    assert all("locations" not in sql for sql, _ in store.calls)
