"""
Canonical resource identifiers for databases and tables.

Locators only label listing results; they are never used to route
connections and never carry credentials.
"""
from __future__ import annotations

from urllib.parse import quote

LOCATOR_SCHEME = "postgres"


def _component(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{label} must not be empty")
    # Nothing is safe: '/', '@', ':' and friends would change the locator's structure.
    return quote(value, safe="")


def locate(database_name: str, schema_name: str, object_name: str) -> str:
    """
    Build ``postgres://<database>/<object>/<schema>``.

    Each component is percent-encoded, so names containing path-significant
    characters still produce a locator with exactly three components.
    """
    authority = _component(database_name, "database_name")
    obj = _component(object_name, "object_name")
    schema = _component(schema_name, "schema_name")
    return f"{LOCATOR_SCHEME}://{authority}/{obj}/{schema}"


__all__ = ["LOCATOR_SCHEME", "locate"]
