"""
Utility modules for the clinic records data layer.
"""

from .cache import TTLCache, CacheEntry, NOT_FOUND
from .cache_keys import build_cache_key, namespace_prefix, scope_key, tenant_scope, wire_value
from .debounce import Debouncer

__all__ = [
    "TTLCache",
    "CacheEntry",
    "NOT_FOUND",
    "build_cache_key",
    "namespace_prefix",
    "scope_key",
    "tenant_scope",
    "wire_value",
    "Debouncer",
]
