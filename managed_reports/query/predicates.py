"""
Typed predicate AST and its SQL renderer.

Every WHERE-clause fragment used by an indicator is one of:

  - StaticPredicate   trusted SQL from the report layer YAML
  - DateRange         inclusive ``>=`` / ``<=`` bounds on a date column
  - Equality          ``column = value``
  - ScopePredicate    the access scope of the requesting principal
  - And               conjunction of any of the above

`render` is the only place SQL text is produced.  Caller-supplied values are
always bound as named parameters; only identifiers validated at construction
time and trusted YAML snippets reach the SQL string.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Union

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

CAST_TEXT = "text"
CAST_DATE = "date"
CAST_INTEGER = "integer"
CASTS = (CAST_TEXT, CAST_DATE, CAST_INTEGER)

SCOPE_ALL = "all"
SCOPE_AGENCY = "agency"
SCOPE_GROUP = "group"
SCOPE_SELF = "self"
SCOPE_NONE = "none"
SCOPES = (SCOPE_ALL, SCOPE_AGENCY, SCOPE_GROUP, SCOPE_SELF, SCOPE_NONE)

_SCOPE_ATTRIBUTES = {
    SCOPE_AGENCY: "associated_user_agencies",
    SCOPE_GROUP: "associated_user_groups",
    SCOPE_SELF: "associated_user_names",
}


def check_identifier(value: str, what: str = "identifier") -> str:
    if not isinstance(value, str) or not _IDENT_RE.match(value):
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


# ── Columns ──────────────────────────────────────────────

@dataclass(frozen=True)
class JsonField:
    """A key inside a record's JSONB ``data`` column."""
    table: str
    field: str
    cast: str = CAST_TEXT

    def __post_init__(self) -> None:
        check_identifier(self.table, "table alias")
        check_identifier(self.field, "field name")
        if self.cast not in CASTS:
            raise ValueError(f"Unknown cast '{self.cast}'. Allowed: {', '.join(CASTS)}")

    def sql(self) -> str:
        raw = f"{self.table}.data->>'{self.field}'"
        if self.cast == CAST_DATE:
            return f"to_date({raw}, 'YYYY-MM-DD')"
        if self.cast == CAST_INTEGER:
            return f"({raw})::integer"
        return raw


# ── Predicate nodes ──────────────────────────────────────

@dataclass(frozen=True)
class StaticPredicate:
    sql: str


@dataclass(frozen=True)
class DateRange:
    column: JsonField
    start: date | None = None
    end: date | None = None
    name: str = "date"


@dataclass(frozen=True)
class Equality:
    column: JsonField
    value: Any
    name: str = "value"


@dataclass(frozen=True)
class ScopePredicate:
    table: str
    scope: str
    values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        check_identifier(self.table, "table alias")
        if self.scope not in SCOPES:
            raise ValueError(f"Unknown scope '{self.scope}'. Allowed: {', '.join(SCOPES)}")


@dataclass(frozen=True)
class And:
    parts: tuple["Predicate", ...] = ()

    @classmethod
    def of(cls, *parts: "Predicate | None") -> "And":
        """Conjunction of *parts*, dropping ``None`` and flattening nested Ands."""
        flat: list[Predicate] = []
        for part in parts:
            if part is None:
                continue
            if isinstance(part, And):
                flat.extend(part.parts)
            else:
                flat.append(part)
        return cls(tuple(flat))


Predicate = Union[StaticPredicate, DateRange, Equality, ScopePredicate, And]


# ── Rendering ────────────────────────────────────────────

class Bindings:
    """Collects bound parameters under unique, deterministic names."""

    def __init__(self) -> None:
        self.params: dict[str, Any] = {}

    def bind(self, prefix: str, value: Any) -> str:
        name = prefix
        n = 1
        while name in self.params:
            name = f"{prefix}_{n}"
            n += 1
        self.params[name] = value
        return f":{name}"


def render(predicate: Predicate | None, bindings: Bindings) -> str | None:
    """Render *predicate* to SQL, registering its values on *bindings*.

    Returns None when the predicate contributes no constraint.
    """
    if predicate is None:
        return None

    if isinstance(predicate, StaticPredicate):
        return predicate.sql.strip() or None

    if isinstance(predicate, DateRange):
        col = predicate.column.sql()
        bounds: list[str] = []
        if predicate.start is not None:
            bounds.append(f"{col} >= {bindings.bind(predicate.name + '_from', predicate.start)}")
        if predicate.end is not None:
            bounds.append(f"{col} <= {bindings.bind(predicate.name + '_to', predicate.end)}")
        return " AND ".join(bounds) or None

    if isinstance(predicate, Equality):
        return f"{predicate.column.sql()} = {bindings.bind(predicate.name, predicate.value)}"

    if isinstance(predicate, ScopePredicate):
        return _render_scope(predicate, bindings)

    if isinstance(predicate, And):
        rendered = [r for r in (render(p, bindings) for p in predicate.parts) if r]
        if not rendered:
            return None
        if len(rendered) == 1:
            return rendered[0]
        return "\n  AND ".join(f"({r})" for r in rendered)

    raise TypeError(f"Not a predicate: {predicate!r}")


def _render_scope(predicate: ScopePredicate, bindings: Bindings) -> str | None:
    if predicate.scope == SCOPE_ALL:
        return None
    if predicate.scope == SCOPE_NONE or not predicate.values:
        return "FALSE"

    attribute = _SCOPE_ATTRIBUTES[predicate.scope]
    if predicate.scope == SCOPE_GROUP:
        placeholder = bindings.bind("scope_groups", list(predicate.values))
        return f"{predicate.table}.data->'{attribute}' ?| {placeholder}"
    placeholder = bindings.bind(f"scope_{predicate.scope}", predicate.values[0])
    return f"{predicate.table}.data->'{attribute}' ? {placeholder}"
