"""
Session and tenant resolution tests.
"""

from types import SimpleNamespace

import httpx
import pytest

from models.errors import MissingTenant, TransportError, Unauthenticated
from models.session import Principal
from services.session_service import StaticSessionScope, SupabaseSessionScope


class FakeAuth:

    def __init__(self, session=None, error=None):
        self.session = session
        self.error = error
        self.signed_out = False

    def get_session(self):
        if self.error is not None:
            raise self.error
        return self.session

    def sign_out(self):
        self.signed_out = True


def _client(auth):
    return SimpleNamespace(auth=auth)


def _session_for(user_id):
    return SimpleNamespace(user=SimpleNamespace(id=user_id, email="doc@clinica.test", role="authenticated"))


class TestStaticSessionScope:

    @pytest.mark.asyncio
    async def test_current_scope(self, principal):
        scope = StaticSessionScope(principal, "bu-1")

        assert await scope.current_scope() == (principal, "bu-1")

    @pytest.mark.asyncio
    async def test_tenant_belongs_to_signed_in_principal(self, principal):
        scope = StaticSessionScope(principal, "bu-1")

        with pytest.raises(MissingTenant):
            await scope.require_tenant("someone-else")


class TestSupabaseSessionScope:

    @pytest.mark.asyncio
    async def test_resolves_principal_and_tenant(self, remote):
        remote.rpc_results["get_idbu"] = [{"get_idbu": "bu-9"}]
        scope = SupabaseSessionScope(_client(FakeAuth(_session_for("u-1"))), remote)

        principal, tenant_id = await scope.current_scope()

        assert principal == Principal(id="u-1", email="doc@clinica.test", role="authenticated")
        assert tenant_id == "bu-9"

    @pytest.mark.asyncio
    async def test_tenant_is_memoized_per_principal(self, remote):
        remote.rpc_results["get_idbu"] = "bu-9"
        scope = SupabaseSessionScope(_client(FakeAuth(_session_for("u-1"))), remote)

        await scope.current_scope()
        await scope.current_scope()

        assert len(remote.rpc_calls) == 1

    @pytest.mark.asyncio
    async def test_no_session_is_unauthenticated(self, remote):
        scope = SupabaseSessionScope(_client(FakeAuth(None)), remote)

        with pytest.raises(Unauthenticated):
            await scope.current_scope()
        assert remote.rpc_calls == []

    @pytest.mark.asyncio
    async def test_empty_tenant_is_never_defaulted(self, remote):
        remote.rpc_results["get_idbu"] = []
        scope = SupabaseSessionScope(_client(FakeAuth(_session_for("u-1"))), remote)

        with pytest.raises(MissingTenant):
            await scope.current_scope()

    @pytest.mark.asyncio
    async def test_network_failure_is_transport(self, remote):
        auth = FakeAuth(error=httpx.ConnectError("connection refused"))
        scope = SupabaseSessionScope(_client(auth), remote)

        with pytest.raises(TransportError):
            await scope.require_session()

    @pytest.mark.asyncio
    async def test_sign_out_forgets_tenants(self, remote):
        remote.rpc_results["get_idbu"] = "bu-9"
        auth = FakeAuth(_session_for("u-1"))
        scope = SupabaseSessionScope(_client(auth), remote)
        await scope.current_scope()

        await scope.sign_out()
        await scope.require_tenant("u-1")

        assert auth.signed_out
        assert len(remote.rpc_calls) == 2


class TestSignOutClearsCaches:

    @pytest.mark.asyncio
    async def test_records_api_sign_out(self, api, remote, session):
        await api.patients.get_all()
        await api.users.get_all()

        await api.sign_out()

        assert all(cache.size() == 0 for cache in api.caches.values())
        with pytest.raises(Unauthenticated):
            await api.patients.get_all()
