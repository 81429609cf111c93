"""
Generic data-access facade over the remote service and a namespaced TTL cache.

Handles:
- Tenant-scoped, deterministic cache keys derived from the executed query
- Read-through caching, including empty results and (optionally) absence
- Sharing one remote call between concurrent misses on the same key
- Invalidation after every write, before the write returns to the caller
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from config import logger
from models.errors import Conflict, NotFound, TransportError
from models.session import Principal
from services.remote_service import Query
from services.session_service import SessionScope
from utils.cache import NOT_FOUND, TTLCache
from utils.cache_keys import scope_key, tenant_scope

INVALIDATE_NAMESPACE = "namespace"
INVALIDATE_TARGETED = "targeted"

Ordering = Sequence[Tuple[str, bool]]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EntityFacade:
    """
    One instance per entity type.

    Writes always hit the remote service first; the cache is only touched once
    the write succeeded. Invalidation is broad by default (every key of this
    namespace for the caller's tenant) and can be narrowed to targeted keys for
    expensive per-entity caches.
    """

    def __init__(
        self,
        remote,
        session: SessionScope,
        cache: TTLCache,
        *,
        collection: str,
        select: str = "*",
        detail_select: Optional[str] = None,
        order_by: Union[str, Ordering, None] = None,
        id_column: str = "id",
        tenant_column: Optional[str] = "idbu",
        scope_reads_to_tenant: bool = True,
        user_column: Optional[str] = "user_id",
        serve_stale_on_error: bool = True,
        cache_not_found: bool = False,
        invalidation: str = INVALIDATE_NAMESPACE,
        soft_delete: bool = False,
        stamp_updated_at: bool = False,
    ):
        if invalidation not in (INVALIDATE_NAMESPACE, INVALIDATE_TARGETED):
            raise ValueError(f"Unknown invalidation policy: {invalidation}")
        self.remote = remote
        self.session = session
        self.cache = cache
        self.collection = collection
        self.select = select
        self.detail_select = detail_select or select
        if isinstance(order_by, str):
            order_by = [(order_by, False)]
        self.order_by: List[Tuple[str, bool]] = list(order_by or [])
        self.id_column = id_column
        self.tenant_column = tenant_column
        self.scope_reads_to_tenant = scope_reads_to_tenant
        self.user_column = user_column
        self.serve_stale_on_error = serve_stale_on_error
        self.cache_not_found = cache_not_found
        self.invalidation = invalidation
        self.soft_delete = soft_delete
        self.stamp_updated_at = stamp_updated_at
        self._inflight: Dict[str, asyncio.Task] = {}
        self._generation = 0

    # ------------------------------------------------------------------
    # Query and key construction
    # ------------------------------------------------------------------

    async def _scope(self) -> Tuple[Principal, str]:
        return await self.session.current_scope()

    def base_query(self, tenant_id: str, select: Optional[str] = None) -> Query:
        query = Query(select=select or self.select)
        if self.tenant_column and self.scope_reads_to_tenant:
            query.eq(self.tenant_column, tenant_id)
        if self.soft_delete:
            query.is_("deleted_at", "null")
        return query

    def ordered(self, query: Query) -> Query:
        for column, desc in self.order_by:
            query.order(column, desc=desc)
        return query

    def key_for(self, tenant_id: str, label: str, query: Query) -> str:
        return scope_key(tenant_id, label, *query.scope_tokens())

    def _all_query(self, tenant_id: str) -> Query:
        return self.ordered(self.base_query(tenant_id))

    def _by_id_query(self, tenant_id: str, record_id: Any) -> Query:
        return self.base_query(tenant_id, self.detail_select).eq(self.id_column, record_id).first()

    def _write_query(self, tenant_id: str, column: str, value: Any) -> Query:
        # Shared catalogs are written by id alone, like they are read
        query = Query().eq(column, value)
        if self.tenant_column and self.scope_reads_to_tenant:
            query.eq(self.tenant_column, tenant_id)
        return query

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(self, force: bool = False) -> List[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        return await self.read(tenant_id, "all", self._all_query(tenant_id), force=force)

    async def get_by_id(self, record_id: Any, force: bool = False) -> Optional[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        return await self.read(tenant_id, "by_id", self._by_id_query(tenant_id, record_id), force=force)

    async def get_by(
        self,
        label: str,
        filters: Dict[str, Any],
        *,
        force: bool = False,
        single: bool = False,
        limit: Optional[int] = None,
    ):
        """Equality lookup on arbitrary columns (the generic ``get_by_x``)."""
        _, tenant_id = await self._scope()
        query = self.base_query(tenant_id)
        for column, value in filters.items():
            query.eq(column, value)
        self.ordered(query)
        if single:
            query.first()
        elif limit is not None:
            query.limit(limit)
        return await self.read(tenant_id, label, query, force=force)

    async def read(
        self,
        tenant_id: str,
        label: str,
        query: Query,
        *,
        force: bool = False,
        loader: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        """
        Read through the cache.

        ``force`` skips a live entry and goes to the remote service; if that
        fails with a transport error the live entry is served instead.
        ``loader`` replaces the default table read (RPCs, counts).
        """
        key = self.key_for(tenant_id, label, query)
        if not force:
            cached = self.cache.get(key)
            if cached is NOT_FOUND:
                logger.debug(f"[CACHE] {self.collection} known-absent {label}")
                return None
            if cached is not None:
                logger.debug(f"[CACHE] {self.collection} HIT {label}")
                return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, query, force, loader, self._generation))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._settle(k, t))
        else:
            logger.debug(f"[CACHE] {self.collection} joining in-flight read {label}")
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the result as retrieved even when every waiter went away
        if not task.cancelled():
            task.exception()

    async def _load(
        self,
        key: str,
        query: Query,
        force: bool,
        loader: Optional[Callable[[], Awaitable[Any]]],
        generation: int,
    ):
        try:
            result = await (loader() if loader else self.remote.read(self.collection, query))
        except NotFound:
            result = None if query.single else []
        except TransportError as e:
            stale = self.cache.get(key) if force and self.serve_stale_on_error else None
            if stale is None:
                raise
            logger.warning(f"[CACHE] {self.collection} refresh failed ({e.message}); serving cached value")
            return None if stale is NOT_FOUND else stale

        if generation != self._generation:
            # A write landed while this read was in flight; its result may predate it
            logger.debug(f"[CACHE] {self.collection} discarding read that raced a write")
            return result

        if result is None:
            if self.cache_not_found:
                self.cache.set(key, NOT_FOUND)
            else:
                self.cache.delete(key)
            return None

        self.cache.set(key, result)
        return result

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _stamp(self, payload: Dict[str, Any], principal: Principal) -> Dict[str, Any]:
        row = dict(payload)
        if self.user_column:
            row[self.user_column] = principal.id
        return row

    async def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        principal, tenant_id = await self._scope()
        row = self._stamp(payload, principal)
        if self.tenant_column:
            row[self.tenant_column] = tenant_id
        result = await self.remote.insert(self.collection, row)
        self.invalidate(tenant_id, record_id=result.get(self.id_column), rows=[result, payload])
        return result

    async def update(self, record_id: Any, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        principal, tenant_id = await self._scope()
        changes = self._stamp(payload, principal)
        if self.stamp_updated_at:
            changes["updated_at"] = utc_now_iso()
        query = self._write_query(tenant_id, self.id_column, record_id)
        rows = await self.remote.update(self.collection, changes, query)
        self.invalidate(tenant_id, record_id=record_id, rows=[*rows, payload])
        return rows[0] if rows else None

    async def delete(self, record_id: Any) -> Optional[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        query = self._write_query(tenant_id, self.id_column, record_id)
        if self.soft_delete:
            now = utc_now_iso()
            rows = await self.remote.update(
                self.collection, {"deleted_at": now, "updated_at": now}, query
            )
        else:
            rows = await self.remote.delete(self.collection, query)
        self.invalidate(tenant_id, record_id=record_id, rows=rows)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def targeted_keys(
        self,
        tenant_id: str,
        record_id: Any,
        rows: Iterable[Dict[str, Any]],
    ) -> List[str]:
        keys = [self.key_for(tenant_id, "all", self._all_query(tenant_id))]
        ids = [record_id] if record_id is not None else []
        ids += [r.get(self.id_column) for r in rows if r.get(self.id_column) is not None]
        for entity_id in dict.fromkeys(ids):
            keys.append(self.key_for(tenant_id, "by_id", self._by_id_query(tenant_id, entity_id)))
        return keys

    def invalidate(
        self,
        tenant_id: str,
        *,
        record_id: Any = None,
        rows: Iterable[Optional[Dict[str, Any]]] = (),
    ) -> None:
        """Drop every cached read a write to this tenant's records may have made stale."""
        self._generation += 1
        if self.invalidation == INVALIDATE_NAMESPACE:
            scope = tenant_scope(tenant_id)
            removed = self.cache.clear(scope)
            for key in [k for k in self._inflight if k.startswith(scope)]:
                del self._inflight[key]
            logger.debug(f"[CACHE] {self.collection} invalidated {removed} entries for tenant")
            return

        for key in self.targeted_keys(tenant_id, record_id, [r for r in rows if r]):
            self.cache.delete(key)
            self._inflight.pop(key, None)
        logger.debug(f"[CACHE] {self.collection} targeted invalidation record={record_id}")

    def clear(self) -> None:
        """Forget every tenant's entries (sign-out)."""
        self._generation += 1
        self.cache.clear()
        self._inflight.clear()


class SingletonRecordFacade(EntityFacade):
    """
    "One record per patient" tables (clinical history sections).

    Reads by patient return the newest row or None. A create that trips the
    per-patient uniqueness constraint falls back to updating that patient's row.
    """

    def __init__(
        self,
        remote,
        session: SessionScope,
        cache: TTLCache,
        *,
        parent_column: str = "patient_id",
        unique_constraint: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("invalidation", INVALIDATE_TARGETED)
        kwargs.setdefault("stamp_updated_at", True)
        kwargs.setdefault("order_by", [("created_at", True)])
        super().__init__(remote, session, cache, **kwargs)
        self.parent_column = parent_column
        self.unique_constraint = unique_constraint

    def _parent_query(self, tenant_id: str, parent_id: Any) -> Query:
        query = self.base_query(tenant_id).eq(self.parent_column, parent_id)
        return self.ordered(query).first()

    async def get_by_patient(self, patient_id: Any, force: bool = False) -> Optional[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        return await self.read(tenant_id, "by_patient", self._parent_query(tenant_id, patient_id), force=force)

    async def create(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return await super().create(payload)
        except Conflict as e:
            parent_id = payload.get(self.parent_column)
            if parent_id is None or not e.violates(self.unique_constraint):
                raise
            logger.info(f"[DB] {self.collection} already has a record for {parent_id}; updating instead")
            result = await self.update(parent_id, payload)
            if result is None:
                logger.error(f"[DB] {self.collection} conflict but no existing record for {parent_id}")
                raise
            return result

    async def update(self, patient_id: Any, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        principal, tenant_id = await self._scope()
        changes = self._stamp(payload, principal)
        changes["updated_at"] = utc_now_iso()
        query = self._write_query(tenant_id, self.parent_column, patient_id)
        rows = await self.remote.update(self.collection, changes, query)
        self.invalidate(tenant_id, rows=[{self.parent_column: patient_id}, *rows])
        if not rows:
            return None
        return max(rows, key=lambda r: str(r.get("updated_at") or ""))

    def targeted_keys(self, tenant_id, record_id, rows) -> List[str]:
        rows = list(rows)
        parents = {r.get(self.parent_column) for r in rows if r.get(self.parent_column) is not None}
        return super().targeted_keys(tenant_id, record_id, rows) + [
            self.key_for(tenant_id, "by_patient", self._parent_query(tenant_id, parent_id))
            for parent_id in parents
        ]
