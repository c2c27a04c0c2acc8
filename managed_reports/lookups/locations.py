"""
Location lookups with a read-through cache.

The full ``locations`` table is cached under ``location_service/<max id>``
for ``location_cache_ttl_hours`` (48 by default).  A new location raises the
max id, which changes the key and forces a reload.  Edits or deletions that
leave the max id untouched are only picked up once the entry expires.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from managed_reports.core.config import get_settings
from managed_reports.core.logging import get_logger
from managed_reports.db.executor import PostgresStore, Store
from managed_reports.lookups.cache import TTLCache, get_cache

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "location_service"
LOCATION_KEY = "location"

_COLUMNS = "id, location_code, admin_level, hierarchy_path, placename_i18n"


@dataclass(frozen=True)
class Location:
    id: int
    location_code: str
    admin_level: int
    hierarchy: tuple[str, ...] = ()
    placename_i18n: dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    def placename(self, locale: str = "en") -> str:
        return self.placename_i18n.get(locale) or self.placename_i18n.get("en") or self.location_code


def _to_location(row: dict[str, Any]) -> Location:
    path = row.get("hierarchy_path") or row["location_code"]
    return Location(
        id=int(row["id"]),
        location_code=row["location_code"],
        admin_level=int(row.get("admin_level") or 0),
        hierarchy=tuple(str(path).split(".")),
        placename_i18n=row.get("placename_i18n") or {},
    )


class LocationService:
    """Location look-ups by code, optionally served from the shared cache."""

    def __init__(
        self,
        store: Store | None = None,
        with_cache: bool = False,
        cache: TTLCache | None = None,
        ttl_hours: float | None = None,
    ):
        self.store = store or PostgresStore()
        self.with_cache = with_cache
        self.cache = cache or get_cache()
        self.ttl_seconds = (
            ttl_hours if ttl_hours is not None else get_settings().location_cache_ttl_hours
        ) * 3600
        self.locations_by_code: dict[str, Location] | None = None

    @classmethod
    def instance(cls, store: Store | None = None) -> "LocationService":
        return cls(store=store, with_cache=get_settings().location_cache_enabled)

    # ── Cache ───────────────────────────────────────────

    def cache_key(self) -> str:
        rows = self.store.execute("SELECT MAX(id) AS max_id FROM locations")
        max_id = rows[0]["max_id"] if rows else None
        return f"{CACHE_KEY_PREFIX}/{max_id}"

    def _load_all(self) -> dict[str, Location]:
        rows = self.store.execute(f"SELECT {_COLUMNS} FROM locations")
        logger.info("Loaded %d locations into cache", len(rows))
        return {loc.location_code: loc for loc in map(_to_location, rows)}

    def rebuild_cache(self, force: bool = False) -> None:
        if not force and self.locations_by_code is not None:
            return
        self.locations_by_code = self.cache.fetch(self.cache_key(), self._load_all, ttl=self.ttl_seconds)

    # ── Look-ups ────────────────────────────────────────

    def find_by_code(self, code: str | None) -> Location | None:
        if not code:
            return None
        if self.with_cache:
            self.rebuild_cache()
            return self.locations_by_code.get(code)
        rows = self.store.execute(
            f"SELECT {_COLUMNS} FROM locations WHERE location_code = :code LIMIT 1",
            {"code": code},
        )
        return _to_location(rows[0]) if rows else None

    def find_by_codes(self, codes: list[str]) -> list[Location]:
        if not codes:
            return []
        if self.with_cache:
            self.rebuild_cache()
            return [self.locations_by_code[c] for c in codes if c in self.locations_by_code]
        rows = self.store.execute(
            f"SELECT {_COLUMNS} FROM locations WHERE location_code = ANY(:codes)",
            {"codes": list(codes)},
        )
        return [_to_location(r) for r in rows]

    def ancestor_code(self, code: str, admin_level: int) -> str | None:
        location = self.find_by_code(code)
        if location is None or location.admin_level < admin_level:
            return None
        return location.hierarchy[admin_level]

    def ancestor(self, code: str, admin_level: int) -> Location | None:
        ancestor_code = self.ancestor_code(code, admin_level)
        if not ancestor_code:
            return None
        return self.find_by_code(ancestor_code)


class LocationResolver:
    """LookupResolver for location-coded values: code → placename."""

    def __init__(self, service: LocationService, locale: str | None = None):
        self._service = service
        self._locale = locale or get_settings().default_locale

    def resolve(self, key: str, raw_value: Any) -> str:
        if raw_value is None:
            return ""
        location = self._service.find_by_code(str(raw_value))
        return location.placename(self._locale) if location else str(raw_value)
