"""
Session scope: who is calling and which business unit (tenant) they belong to.

A tenant is never defaulted. Serving a placeholder tenant would let cache keys
and remote filters cross business-unit boundaries.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Tuple

import httpx
from supabase import AuthError, Client

from config import logger, TENANT_RPC
from models.errors import MissingTenant, TransportError, Unauthenticated
from models.session import Principal
from services.remote_service import SupabaseRemote


class SessionScope:
    """Interface consumed by the data-access facades."""

    async def require_session(self) -> Principal:
        raise NotImplementedError

    async def require_tenant(self, principal_id: str) -> str:
        raise NotImplementedError

    async def current_scope(self) -> Tuple[Principal, str]:
        principal = await self.require_session()
        tenant_id = await self.require_tenant(principal.id)
        return principal, tenant_id


class StaticSessionScope(SessionScope):
    """Fixed principal/tenant pair for scripts, workers and tests."""

    def __init__(self, principal: Optional[Principal] = None, tenant_id: Optional[str] = None):
        self._principal = principal
        self._tenant_id = tenant_id

    def sign_in(self, principal: Principal, tenant_id: Optional[str]) -> None:
        self._principal = principal
        self._tenant_id = tenant_id

    def sign_out(self) -> None:
        self._principal = None
        self._tenant_id = None

    async def require_session(self) -> Principal:
        if self._principal is None:
            raise Unauthenticated("An active session is required")
        return self._principal

    async def require_tenant(self, principal_id: str) -> str:
        if not self._tenant_id or self._principal is None or self._principal.id != principal_id:
            raise MissingTenant(f"User {principal_id} has no business unit")
        return self._tenant_id


class SupabaseSessionScope(SessionScope):
    """
    Reads the Supabase auth session and resolves the tenant through an RPC.

    The tenant is memoized per principal for the life of the process (or until
    ``forget``); it is not stored in any TTLCache.
    """

    def __init__(self, client: Client, remote: SupabaseRemote, tenant_rpc: str = TENANT_RPC):
        self._client = client
        self._remote = remote
        self._tenant_rpc = tenant_rpc
        self._tenants: Dict[str, str] = {}

    async def require_session(self) -> Principal:
        try:
            session = await asyncio.to_thread(self._client.auth.get_session)
        except AuthError as e:
            logger.warning(f"[SESSION] Session lookup rejected: {e}")
            raise Unauthenticated(str(e) or "An active session is required") from e
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"[SESSION] Session lookup failed: {e}")
            raise TransportError(str(e) or "Session lookup failed") from e

        user = getattr(session, "user", None) if session else None
        if user is None:
            raise Unauthenticated("An active session is required")
        return Principal(id=str(user.id), email=user.email, role=getattr(user, "role", None))

    async def require_tenant(self, principal_id: str) -> str:
        cached = self._tenants.get(principal_id)
        if cached:
            return cached

        data = await self._remote.rpc(self._tenant_rpc)
        if isinstance(data, list):
            data = data[0] if data else None
        if isinstance(data, dict):
            data = next(iter(data.values()), None)
        if not data:
            logger.error(f"[SESSION] User {principal_id} has no business unit")
            raise MissingTenant(f"User {principal_id} has no business unit")

        tenant_id = str(data)
        self._tenants[principal_id] = tenant_id
        logger.debug(f"[SESSION] Resolved tenant for user {principal_id}")
        return tenant_id

    def forget(self, principal_id: Optional[str] = None) -> None:
        if principal_id is None:
            self._tenants.clear()
        else:
            self._tenants.pop(principal_id, None)

    async def sign_out(self) -> None:
        await asyncio.to_thread(self._client.auth.sign_out)
        self.forget()
