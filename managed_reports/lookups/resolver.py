"""
Lookup-label resolvers: raw coded values → human-readable labels.
"""
from __future__ import annotations

from typing import Any, Protocol

from managed_reports.core.config import get_settings


class LookupResolver(Protocol):
    def resolve(self, key: str, raw_value: Any) -> str:
        ...


def _as_text(raw_value: Any) -> str:
    return "" if raw_value is None else str(raw_value)


class IdentityResolver:
    """Labels are the raw values themselves."""

    def resolve(self, key: str, raw_value: Any) -> str:
        return _as_text(raw_value)


class StaticLookupResolver:
    """Labels from the ``lookups`` section of the report layer.

    Each entry maps a raw value to either a plain label or a ``{locale: label}``
    mapping.  Unknown values fall back to the raw value.
    """

    def __init__(
        self,
        lookups: dict[str, dict[str, Any]],
        locale: str | None = None,
        fallback_locale: str = "en",
    ):
        self._lookups = lookups
        self._locale = locale or get_settings().default_locale
        self._fallback_locale = fallback_locale

    def resolve(self, key: str, raw_value: Any) -> str:
        text = _as_text(raw_value)
        entry = self._lookups.get(key, {}).get(text)
        if entry is None:
            return text
        if isinstance(entry, dict):
            return entry.get(self._locale) or entry.get(self._fallback_locale) or text
        return str(entry)


class CompositeResolver:
    """Dispatches on lookup key; keys without a dedicated resolver use *default*."""

    def __init__(self, resolvers: dict[str, LookupResolver], default: LookupResolver | None = None):
        self._resolvers = resolvers
        self._default = default or IdentityResolver()

    def resolve(self, key: str, raw_value: Any) -> str:
        return self._resolvers.get(key, self._default).resolve(key, raw_value)
