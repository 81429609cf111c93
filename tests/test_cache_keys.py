"""
Cache key construction tests.
"""

from datetime import date

import pytest

from models.records import ActivityType
from services.remote_service import Query
from utils.cache_keys import build_cache_key, namespace_prefix, scope_key, tenant_scope, wire_value


class TestScopeKey:

    def test_keyword_filter_order_does_not_matter(self):
        assert scope_key("bu-1", "filtered", room=2, day="2024-05-01") == \
            scope_key("bu-1", "filtered", day="2024-05-01", room=2)

    def test_none_filter_equals_absent_filter(self):
        assert scope_key("bu-1", "all", search=None) == scope_key("bu-1", "all")

    def test_positional_order_matters(self):
        assert scope_key("bu-1", "a", "b") != scope_key("bu-1", "b", "a")

    def test_separators_inside_values_cannot_collide(self):
        assert scope_key("bu-1", "a:b") != scope_key("bu-1", "a", "b")
        assert scope_key("bu-1", x="1:y=2") != scope_key("bu-1", x="1", y="2")

    def test_keys_start_with_tenant_scope(self):
        key = scope_key("bu-1", "all")

        assert key.startswith(tenant_scope("bu-1"))
        assert not key.startswith(tenant_scope("bu-10"))

    def test_tenant_is_required(self):
        with pytest.raises(ValueError):
            scope_key("", "all")
        with pytest.raises(ValueError):
            scope_key("bu-1")

    def test_full_key_carries_namespace(self):
        key = build_cache_key("patients", "bu-1", "by_id", 7)

        assert key == namespace_prefix("patients") + scope_key("bu-1", "by_id", 7)


class TestWireValue:

    def test_renders_like_the_remote_service(self):
        assert wire_value(True) == "true"
        assert wire_value(None) == "null"
        assert wire_value(ActivityType.SYSTEM) == "sistema"
        assert wire_value(date(2024, 5, 1)) == "2024-05-01"

    def test_sequences_are_order_independent(self):
        assert wire_value(["b", "a"]) == wire_value(("a", "b"))


class TestQueryScopeTokens:

    def test_filter_order_does_not_matter(self):
        first = Query().eq("idbu", "bu-1").eq("activo", True)
        second = Query().eq("activo", True).eq("idbu", "bu-1")

        assert first.scope_tokens() == second.scope_tokens()

    def test_ordering_and_paging_matter(self):
        base = Query().eq("idbu", "bu-1")

        assert base.copy().order("nombre").scope_tokens() != \
            base.copy().order("nombre", desc=True).scope_tokens()
        assert base.copy().range(0, 9).scope_tokens() != \
            base.copy().range(10, 19).scope_tokens()

    def test_select_is_part_of_the_scope(self):
        assert Query(select="id").scope_tokens() != Query(select="*").scope_tokens()
