"""
Deterministic cache key construction.

Full key layout: ``<namespace>:<tenant>:<token>:<token>:...:<name>=<value>``.
A namespaced TTLCache already carries ``<namespace>:`` as its prefix, so
facades hand it only the scope part built by ``scope_key``.

Every token is percent-quoted, so ``:`` and ``=`` only ever act as separators
and two different queries cannot render to the same key.
"""

from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Any
from urllib.parse import quote


def wire_value(value: Any) -> str:
    """Render a value the way it is sent to the remote service."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return wire_value(value.value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(sorted(wire_value(v) for v in value))
    if value is None:
        return "null"
    return str(value)


def _token(value: Any) -> str:
    return quote(wire_value(value), safe="")


def namespace_prefix(namespace: str) -> str:
    """TTLCache prefix for a namespace."""
    if not namespace:
        raise ValueError("namespace must be a non-empty string")
    return f"{_token(namespace)}:"


def tenant_scope(tenant_id: str) -> str:
    """Scope prefix shared by every key of one tenant inside a namespace."""
    if not tenant_id:
        raise ValueError("cache keys must be scoped to a tenant")
    return f"{_token(tenant_id)}:"


def scope_key(tenant_id: str, *tokens: Any, **filters: Any) -> str:
    """
    Build the tenant-scoped part of a key for one logical query.

    Positional tokens keep their order (entity id, parent id, literal "all").
    Keyword filters are order-independent; a filter set to None is the same
    query as an absent filter and is dropped.
    """
    parts = [_token(t) for t in tokens]
    parts.extend(
        f"{_token(name)}={_token(value)}"
        for name, value in sorted(filters.items())
        if value is not None
    )
    if not parts:
        raise ValueError("a cache key needs at least one scope token")
    return tenant_scope(tenant_id) + ":".join(parts)


def build_cache_key(namespace: str, tenant_id: str, *tokens: Any, **filters: Any) -> str:
    """Full key as stored in a shared backing store."""
    return namespace_prefix(namespace) + scope_key(tenant_id, *tokens, **filters)
