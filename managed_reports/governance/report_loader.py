"""
Loads, parses, and caches the report layer YAML into strongly-typed objects.

The report layer is the single source of truth for:
  - indicators   (base table, joins, static predicates, classification)
  - filters      (parameter name -> kind + JSONB column)
  - roles        (managed report scope, allowed indicators)
  - age ranges   (bucket boundaries and display order)
  - lookups      (raw value -> per-locale label)
  - allowed tables
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

from managed_reports.core.config import get_settings
from managed_reports.governance.rbac import Role, parse_roles
from managed_reports.insights.comparators import parse_age_range
from managed_reports.query.filters import FILTER_DATE_RANGE, FILTER_TYPES
from managed_reports.query.predicates import CAST_DATE, JsonField, check_identifier

AS_OF_PLACEHOLDER = "{as_of}"


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class FilterDefinition:
    name: str
    type: str  # date_range | equality
    column: JsonField


@dataclass(frozen=True)
class JoinSpec:
    table: str
    alias: str
    on: str
    join_type: str = "inner"  # inner | left


@dataclass(frozen=True)
class ClassificationCase:
    when: str
    label: str


@dataclass(frozen=True)
class Classification:
    """How each underlying record is mapped to its lookup value.

    Exactly one of ``cases``, ``field`` or ``age_field`` is set.
    """
    cases: tuple[ClassificationCase, ...] = ()
    else_label: str | None = None
    field: JsonField | None = None
    age_field: JsonField | None = None

    @property
    def kind(self) -> str:
        if self.cases:
            return "cases"
        if self.age_field is not None:
            return "age_ranges"
        return "field"


@dataclass(frozen=True)
class IndicatorDefinition:
    id: str
    description: str
    base_table: str
    alias: str
    classification: Classification
    lookup_key: str
    count_column: str
    scope_table: str
    joins: tuple[JoinSpec, ...] = ()
    static_predicates: tuple[str, ...] = ()
    filters: tuple[str, ...] = ()
    date_field: JsonField | None = None

    @property
    def groupable(self) -> bool:
        return self.date_field is not None

    @property
    def tables(self) -> list[str]:
        return [self.base_table] + [j.table for j in self.joins]


@dataclass
class ReportModel:
    """Fully parsed report layer."""

    version: int
    indicators: dict[str, IndicatorDefinition]  # keyed by id
    filters: dict[str, FilterDefinition]        # keyed by name
    roles: dict[str, Role]
    age_ranges: list[str]
    lookups: dict[str, dict[str, dict[str, str]]]
    allowed_tables: set[str]

    # ── Convenience look-ups ─────────────────────────

    def indicator(self, indicator_id: str) -> IndicatorDefinition | None:
        return self.indicators.get(indicator_id)

    def filter(self, name: str) -> FilterDefinition:
        return self.filters[name]

    def get_indicator_ids(self) -> list[str]:
        return list(self.indicators.keys())

    def get_indicators_list(self) -> list[dict[str, Any]]:
        """Return indicators as a list of dicts (for API responses)."""
        result = []
        for ind in self.indicators.values():
            result.append({
                "id": ind.id,
                "description": ind.description,
                "lookup_key": ind.lookup_key,
                "filters": list(ind.filters),
                "groupable": ind.groupable,
            })
        return result


# ── Parsing ──────────────────────────────────────────────

def _parse_json_field(raw: dict[str, Any], cast: str | None = None) -> JsonField:
    return JsonField(
        table=raw["table"],
        field=raw["field"],
        cast=cast or raw.get("cast", "text"),
    )


def _parse_filter(name: str, raw: dict[str, Any]) -> FilterDefinition:
    ftype = raw.get("type", "equality")
    if ftype not in FILTER_TYPES:
        raise ValueError(f"Filter '{name}' has unknown type '{ftype}'")
    cast = CAST_DATE if ftype == FILTER_DATE_RANGE else None
    return FilterDefinition(name=name, type=ftype, column=_parse_json_field(raw, cast))


def _parse_join(raw: dict[str, Any]) -> JoinSpec:
    return JoinSpec(
        table=check_identifier(raw["table"], "table"),
        alias=check_identifier(raw.get("alias", raw["table"]), "table alias"),
        on=raw["condition"],
        join_type=raw.get("type", "inner"),
    )


def _parse_classification(raw: dict[str, Any]) -> Classification:
    if "cases" in raw:
        cases = tuple(
            ClassificationCase(when=c["when"], label=check_identifier(c["then"], "label"))
            for c in raw["cases"]
        )
        return Classification(cases=cases, else_label=check_identifier(raw["else"], "label"))
    if "age_ranges" in raw:
        return Classification(age_field=_parse_json_field(raw["age_ranges"], "integer"))
    return Classification(field=_parse_json_field(raw["field"]))


def _parse_indicator(raw: dict[str, Any], filters: dict[str, FilterDefinition]) -> IndicatorDefinition:
    alias = raw.get("alias", raw["base_table"])
    for name in raw.get("filters") or []:
        if name not in filters:
            raise ValueError(f"Indicator '{raw['id']}' references unknown filter '{name}'")
    date_field = raw.get("date_field")
    return IndicatorDefinition(
        id=raw["id"],
        description=raw.get("description", ""),
        base_table=check_identifier(raw["base_table"], "table"),
        alias=check_identifier(alias, "table alias"),
        classification=_parse_classification(raw["classification"]),
        lookup_key=raw.get("lookup_key", raw["id"]),
        count_column=raw.get("count_column", f"{alias}.id"),
        scope_table=check_identifier(raw.get("scope_table", alias), "table alias"),
        joins=tuple(_parse_join(j) for j in raw.get("joins") or []),
        static_predicates=tuple(raw.get("static_predicates") or []),
        filters=tuple(raw.get("filters") or []),
        date_field=_parse_json_field(date_field, CAST_DATE) if date_field else None,
    )


def _parse_model(raw_yaml: dict[str, Any]) -> ReportModel:
    filters = {
        name: _parse_filter(name, cfg)
        for name, cfg in (raw_yaml.get("filters") or {}).items()
    }
    indicators = {
        i["id"]: _parse_indicator(i, filters)
        for i in raw_yaml.get("indicators", [])
    }
    age_ranges = [str(a) for a in raw_yaml.get("age_ranges") or []]
    for label in age_ranges:
        parse_age_range(label)  # fail fast on malformed ranges
    return ReportModel(
        version=raw_yaml.get("version", 1),
        indicators=indicators,
        filters=filters,
        roles=parse_roles(raw_yaml.get("roles")),
        age_ranges=age_ranges,
        lookups=raw_yaml.get("lookups") or {},
        allowed_tables=set(raw_yaml.get("allowed_tables", [])),
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_report_model(path: str | None = None) -> ReportModel:
    """Load and cache the report layer from YAML."""
    path = path or get_settings().report_layer_path
    with open(Path(path), encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return _parse_model(raw)


def get_indicator_ids() -> list[str]:
    return load_report_model().get_indicator_ids()
