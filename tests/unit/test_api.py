"""
API tests -- FastAPI endpoints via TestClient (no live server needed).
The store dependency is overridden with an in-memory fake.
"""
import pytest
from fastapi.testclient import TestClient

from managed_reports.api.main import app
from managed_reports.api.routers.indicators import get_store

client = TestClient(app)

ADMIN = {"user_name": "admin", "role": "mrm_admin"}


@pytest.fixture
def store(fake_store):
    fake = fake_store([
        {"id": "detention_detained", "total": 3},
        {"id": "detention_released", "total": 1},
    ])
    app.dependency_overrides[get_store] = lambda: fake
    yield fake
    app.dependency_overrides.clear()


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_indicators_list():
    resp = client.get("/indicators")
    assert resp.status_code == 200
    data = resp.json()
    assert data["indicators"] == ["detention_status", "violation_type", "individual_age", "incident_location"]


def test_catalog():
    resp = client.get("/catalog")
    assert resp.status_code == 200
    data = resp.json()
    detention = next(i for i in data["indicators"] if i["id"] == "detention_status")
    assert detention["groupable"] is True
    assert detention["filters"][0] == "incident_date"
    assert {"name": "ctfmr_verified", "type": "equality"} in data["filters"]
    assert data["age_ranges"][-1] == "18+"
    assert data["groupings"] == ["year", "quarter", "month"]


def test_indicator_endpoint(store):
    resp = client.post("/indicators/detention_status", json={
        "principal": ADMIN,
        "filters": {"incident_date": {"from": "2023-01-01", "to": "2023-12-31"}},
        "as_of": "2024-01-01",
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["indicator_id"] == "detention_status"
    assert data["grouped_by"] is None
    assert data["rows"] == [
        {"group_id": None, "id": "detention_detained", "total": 3},
        {"group_id": None, "id": "detention_released", "total": 1},
    ]
    sql, params = store.calls[0]
    assert str(params["as_of"]) == "2024-01-01"


def test_indicator_endpoint_grouped(store):
    store.rows = [{"group_year": 2023, "group_category": 2, "id": "detention_detained", "total": 5}]
    resp = client.post("/indicators/detention_status", json={"principal": ADMIN, "grouped_by": "quarter"})
    assert resp.status_code == 200
    assert resp.json()["rows"] == [{"group_id": "2023-Q2", "id": "detention_detained", "total": 5}]


def test_insight_endpoint(store):
    resp = client.post("/indicators/detention_status/insight", json={"principal": ADMIN, "locale": "fr"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["lookup_key"] == "detention_status"
    assert data["columns"] == ["total"]
    assert [(r["label"], r["values"]) for r in data["rows"]] == [("Détenu", [3]), ("Libéré", [1])]


def test_bad_date_returns_422(store):
    resp = client.post("/indicators/detention_status", json={
        "principal": ADMIN,
        "filters": {"incident_date": {"from": "not-a-date"}},
    })
    assert resp.status_code == 422
    assert any("unparseable date" in e for e in resp.json()["detail"])
    assert store.calls == []


def test_misnamed_date_range_returns_422(store):
    resp = client.post("/indicators/detention_status", json={
        "principal": ADMIN,
        "filters": {"incident_date": {"start": "2023-01-01", "end": "2023-02-01"}},
    })
    assert resp.status_code == 422
    assert any("unknown date range keys" in e for e in resp.json()["detail"])
    assert store.calls == []


def test_unknown_indicator_returns_422(store):
    resp = client.post("/indicators/nope", json={"principal": ADMIN})
    assert resp.status_code == 422


def test_missing_principal_rejected(store):
    resp = client.post("/indicators/detention_status", json={"filters": {}})
    assert resp.status_code == 422


def test_store_failure_returns_502(store):
    store.error = RuntimeError("connection reset")
    resp = client.post("/indicators/detention_status", json={"principal": ADMIN})
    assert resp.status_code == 502
    assert resp.json()["detail"] == "Report query failed"
