"""
TTL-based caching utilities for remote record reads.

Entries expire lazily: a stale entry is evicted by the read that finds it,
there is no background sweep.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from config import logger


class _NotFound:
    """Marker stored in a cache to remember that a record does not exist."""

    _instance: Optional["_NotFound"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND = _NotFound()


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """
    Namespaced TTL cache.

    Several instances may share one backing store; each one only ever reads,
    bounds and clears keys under its own namespace prefix. ``None`` is the miss
    value, so callers that need to remember absence store ``NOT_FOUND``.
    """

    def __init__(
        self,
        ttl_seconds: float,
        namespace_prefix: str,
        store: Optional["OrderedDict[str, CacheEntry]"] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not namespace_prefix:
            raise ValueError("namespace_prefix must be a non-empty string")
        self._ttl = float(ttl_seconds)
        self._prefix = namespace_prefix
        self._store: "OrderedDict[str, CacheEntry]" = store if store is not None else OrderedDict()
        self._max_entries = max_entries or None
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def namespace_prefix(self) -> str:
        return self._prefix

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _full_key(self, key: str) -> str:
        return self._prefix + key

    def get(self, key: str) -> Optional[Any]:
        """Get cached value if not expired; evicts it otherwise."""
        full_key = self._full_key(key)
        entry = self._store.get(full_key)
        if entry is None:
            self._misses += 1
            return None
        if self._clock() >= entry.expires_at:
            del self._store[full_key]
            self._misses += 1
            self._evictions += 1
            logger.debug(f"[CACHE] Expired {full_key}")
            return None
        self._store.move_to_end(full_key)
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any) -> None:
        """Cache a value with this instance's TTL, replacing any prior entry."""
        full_key = self._full_key(key)
        self._store.pop(full_key, None)
        self._store[full_key] = CacheEntry(value=value, expires_at=self._clock() + self._ttl)
        if self._max_entries is not None:
            self._enforce_bound()

    def delete(self, key: str) -> None:
        self._store.pop(self._full_key(key), None)

    def clear(self, prefix_filter: Optional[str] = None) -> int:
        """
        Remove every entry of this namespace, or only those whose key starts
        with ``prefix_filter``. Returns how many entries were removed.
        """
        match = self._prefix + (prefix_filter or "")
        doomed = [k for k in self._store if k.startswith(match)]
        for k in doomed:
            del self._store[k]
        if doomed:
            logger.debug(f"[CACHE] Cleared {len(doomed)} entries under '{match}'")
        return len(doomed)

    def peek_entry(self, key: str) -> Optional[CacheEntry]:
        """Raw entry lookup with no expiry check and no eviction."""
        return self._store.get(self._full_key(key))

    def size(self) -> int:
        return sum(1 for k in self._store if k.startswith(self._prefix))

    def stats(self) -> Dict[str, int]:
        return {
            "entries": self.size(),
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
        }

    def _enforce_bound(self) -> None:
        # OrderedDict iteration is oldest-first, so the first match is the LRU entry
        own = [k for k in self._store if k.startswith(self._prefix)]
        overflow = len(own) - self._max_entries
        for k in own[:max(overflow, 0)]:
            del self._store[k]
            self._evictions += 1
