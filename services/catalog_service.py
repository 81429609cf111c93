"""
Pathology catalog service.
"""

from __future__ import annotations

from typing import Any, Dict, List

from config import TABLE_PATOLOGIES
from models.records import or_filter_term
from services.data_access import EntityFacade
from services.session_service import SessionScope
from utils.cache import TTLCache
from utils.debounce import Debouncer, DEFAULT_DELAY_SECONDS

SEARCH_LIMIT = 20


class PatologyService(EntityFacade):
    """
    The catalog is shared across business units (row-level security decides
    visibility), so reads are not filtered by tenant. Keys still are.
    """

    def __init__(self, remote, session: SessionScope, cache: TTLCache):
        super().__init__(
            remote,
            session,
            cache,
            collection=TABLE_PATOLOGIES,
            select="id, nombre, especialidad, sexo, activo, created_at",
            order_by="nombre",
            scope_reads_to_tenant=False,
        )

    async def get_active(self, force: bool = False) -> List[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        query = (
            self.base_query(tenant_id, "id, nombre, especialidad, sexo")
            .eq("activo", True)
            .order("nombre")
        )
        return await self.read(tenant_id, "active", query, force=force)

    async def search(self, term: str) -> List[Dict[str, Any]]:
        term = or_filter_term(term)
        if term is None:
            return []
        _, tenant_id = await self._scope()
        query = (
            self.base_query(tenant_id, "id, nombre, codcie10, especialidad, sexo")
            .eq("activo", True)
            .or_(f"nombre.ilike.%{term}%,especialidad.ilike.%{term}%")
            .order("nombre")
            .limit(SEARCH_LIMIT)
        )
        return await self.read(tenant_id, "search", query)

    def search_as_you_type(self, delay_seconds: float = DEFAULT_DELAY_SECONDS) -> Debouncer:
        return Debouncer(self.search, delay_seconds)
