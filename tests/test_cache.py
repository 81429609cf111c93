"""
TTL cache tests.
"""

from collections import OrderedDict

import pytest

from utils.cache import NOT_FOUND, TTLCache


class TestTTLCache:
    """Expiry, namespacing and bounds of TTLCache."""

    @pytest.fixture
    def cache(self, clock):
        return TTLCache(60, "patients:", clock=clock)

    def test_hit_before_expiry(self, cache, clock):
        cache.set("bu-1:all", [{"id": 1}])
        clock.advance(59.9)

        assert cache.get("bu-1:all") == [{"id": 1}]
        assert cache.stats()["hits"] == 1

    def test_entry_expires_at_ttl(self, cache, clock):
        cache.set("bu-1:all", [])
        clock.advance(60)

        assert cache.get("bu-1:all") is None
        assert cache.peek_entry("bu-1:all") is None
        assert cache.stats()["evictions"] == 1

    def test_empty_list_is_a_hit(self, cache):
        cache.set("bu-1:all", [])

        assert cache.get("bu-1:all") == []
        assert cache.stats()["misses"] == 0

    def test_not_found_marker_round_trips(self, cache):
        cache.set("bu-1:by_patient:p1", NOT_FOUND)

        assert cache.get("bu-1:by_patient:p1") is NOT_FOUND
        assert not NOT_FOUND

    def test_set_replaces_and_restarts_ttl(self, cache, clock):
        cache.set("k", 1)
        clock.advance(50)
        cache.set("k", 2)
        clock.advance(50)

        assert cache.get("k") == 2

    def test_clear_with_prefix_filter(self, cache):
        cache.set("bu-1:all", [])
        cache.set("bu-1:by_id:1", {})
        cache.set("bu-2:all", [])

        removed = cache.clear("bu-1:")

        assert removed == 2
        assert cache.get("bu-2:all") == []
        assert cache.size() == 1

    def test_empty_prefix_rejected(self):
        with pytest.raises(ValueError):
            TTLCache(60, "")


class TestSharedStore:
    """Several namespaces on one backing store."""

    @pytest.fixture
    def store(self):
        return OrderedDict()

    def test_namespaces_do_not_see_each_other(self, store, clock):
        patients = TTLCache(60, "patients:", store=store, clock=clock)
        appointments = TTLCache(60, "appointments:", store=store, clock=clock)

        patients.set("bu-1:all", ["p"])
        appointments.set("bu-1:all", ["a"])
        patients.clear()

        assert patients.get("bu-1:all") is None
        assert appointments.get("bu-1:all") == ["a"]
        assert len(store) == 1

    def test_each_namespace_keeps_its_own_ttl(self, store, clock):
        short = TTLCache(10, "activities:", store=store, clock=clock)
        long = TTLCache(600, "patients:", store=store, clock=clock)
        short.set("k", 1)
        long.set("k", 2)

        clock.advance(11)

        assert short.get("k") is None
        assert long.get("k") == 2

    def test_bound_evicts_least_recently_used_in_own_namespace(self, store, clock):
        bounded = TTLCache(60, "patients:", store=store, max_entries=2, clock=clock)
        other = TTLCache(60, "users:", store=store, clock=clock)
        other.set("a", 1)
        other.set("b", 2)

        bounded.set("k1", 1)
        bounded.set("k2", 2)
        bounded.get("k1")
        bounded.set("k3", 3)

        assert bounded.get("k2") is None
        assert bounded.get("k1") == 1
        assert bounded.get("k3") == 3
        assert other.size() == 2
