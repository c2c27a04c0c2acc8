"""
Shared fixtures: the bundled report layer and an in-memory store.
"""
from __future__ import annotations

from typing import Any

import pytest

from managed_reports.governance.rbac import Principal
from managed_reports.governance.report_loader import load_report_model, ReportModel


class FakeStore:
    """Records every query and answers with canned rows (or raises)."""

    def __init__(self, rows: list[dict[str, Any]] | None = None, error: Exception | None = None):
        self.rows = rows or []
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        self.calls.append((sql, dict(params or {})))
        if self.error is not None:
            raise self.error
        return [dict(r) for r in self.rows]


@pytest.fixture(scope="session")
def model() -> ReportModel:
    return load_report_model()


@pytest.fixture
def fake_store():
    def make(rows: list[dict[str, Any]] | None = None, error: Exception | None = None) -> FakeStore:
        return FakeStore(rows, error)
    return make


@pytest.fixture
def admin() -> Principal:
    return Principal(user_name="admin", role="mrm_admin")
