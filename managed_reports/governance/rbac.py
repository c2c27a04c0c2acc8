"""
Role-based access scope for managed reports.

Roles are defined in the report layer YAML under a top-level ``roles`` key.
Each role carries a *managed report scope* (which records its members may
count) and the indicators they may run.

Example YAML:
  roles:
    mrm_admin:
      managed_report_scope: all
      allowed_indicators: "*"       # wildcard: every indicator
    mrm_agency_lead:
      managed_report_scope: agency
      allowed_indicators: [detention_status, violation_type]
    mrm_worker:
      managed_report_scope: self
      allowed_indicators: [detention_status]

If no ``roles`` section exists the system operates in *open mode* (every
principal sees every record).  A principal that may not see anything gets the
``none`` scope, which renders as an always-false predicate: the report comes
back empty rather than failing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from managed_reports.core.logging import get_logger
from managed_reports.query.predicates import (
    SCOPE_AGENCY,
    SCOPE_ALL,
    SCOPE_GROUP,
    SCOPE_NONE,
    SCOPE_SELF,
    SCOPES,
)

logger = get_logger(__name__)


# ── Data classes ────────────────────────────────────────


@dataclass(frozen=True)
class Role:
    """A single role definition."""
    name: str
    managed_report_scope: str = SCOPE_SELF
    allowed_indicators: list[str] = field(default_factory=list)
    wildcard_indicators: bool = False

    def allows(self, indicator_id: str) -> bool:
        return self.wildcard_indicators or indicator_id in self.allowed_indicators


class Principal(BaseModel):
    """The acting user, as far as access scoping is concerned."""

    user_name: str = Field(..., min_length=1)
    role: str | None = None
    agency: str | None = Field(None, description="Unique id of the user's agency")
    user_groups: list[str] = Field(default_factory=list, description="Unique ids of the user's groups")


@dataclass(frozen=True)
class AccessScope:
    level: str
    values: tuple[str, ...] = ()

    @property
    def is_unrestricted(self) -> bool:
        return self.level == SCOPE_ALL

    @property
    def is_denied(self) -> bool:
        return self.level == SCOPE_NONE


UNRESTRICTED = AccessScope(SCOPE_ALL)
DENIED = AccessScope(SCOPE_NONE)


# ── Parsing ─────────────────────────────────────────────


def parse_roles(raw: dict[str, Any] | None) -> dict[str, Role]:
    """Parse the ``roles`` section of the report layer YAML."""
    if not raw:
        return {}

    roles: dict[str, Role] = {}
    for name, cfg in raw.items():
        scope = cfg.get("managed_report_scope", SCOPE_SELF)
        if scope not in SCOPES:
            raise ValueError(f"Role '{name}' has unknown managed_report_scope '{scope}'")
        ai = cfg.get("allowed_indicators", [])
        wi = ai == "*"
        roles[name] = Role(
            name=name,
            managed_report_scope=scope,
            allowed_indicators=[] if wi else list(ai),
            wildcard_indicators=wi,
        )
    return roles


# ── Enforcement ─────────────────────────────────────────


def resolve_scope(
    principal: Principal,
    indicator_id: str,
    roles: dict[str, Role],
) -> AccessScope:
    """Return the records *principal* may count for *indicator_id*.

    Never raises: anything not explicitly granted resolves to ``DENIED``.
    """
    if not roles:
        return UNRESTRICTED  # no roles defined → open mode

    role = roles.get(principal.role or "")
    if role is None:
        logger.warning("Unknown role '%s' for user=%s -- scope denied", principal.role, principal.user_name)
        return DENIED

    if not role.allows(indicator_id):
        logger.warning(
            "Role '%s' may not run indicator '%s' -- scope denied", role.name, indicator_id,
        )
        return DENIED

    level = role.managed_report_scope
    if level == SCOPE_ALL:
        return UNRESTRICTED
    if level == SCOPE_AGENCY:
        values = (principal.agency,) if principal.agency else ()
    elif level == SCOPE_GROUP:
        values = tuple(sorted(principal.user_groups))
    elif level == SCOPE_SELF:
        values = (principal.user_name,)
    else:
        values = ()

    if not values:
        logger.warning(
            "User=%s has %s scope but nothing to match on -- scope denied",
            principal.user_name, level,
        )
        return DENIED
    return AccessScope(level, values)
