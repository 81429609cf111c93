"""
Remote data service adapter (Supabase / PostgREST).

Handles:
- Running the synchronous Supabase client off the event loop with a hard timeout
- Translating PostgREST and transport failures into the closed error taxonomy
- A small query description that doubles as the source of cache scope tokens
"""

from __future__ import annotations

import re
import asyncio
import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from config import logger, REMOTE_CALL_TIMEOUT_SEC, SUPABASE_URL, SUPABASE_ANON_KEY
from models.errors import (
    Conflict,
    NotFound,
    RecordsError,
    TransportError,
    Unauthenticated,
)
from utils.cache_keys import wire_value

# PostgREST / Postgres codes the data layer gives meaning to
CODE_NO_ROWS = "PGRST116"
CODE_JWT_EXPIRED = "PGRST301"
CODE_UNIQUE_VIOLATION = "23505"
CODE_FOREIGN_KEY_VIOLATION = "23503"

_CONSTRAINT_RE = re.compile(r'constraint "([^"]+)"')

_FILTER_OPS = ("eq", "gte", "lte", "ilike", "in_", "is_")


def create_supabase_client() -> Client:
    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise RuntimeError("Missing SUPABASE_URL or SUPABASE_ANON_KEY")
    return create_client(SUPABASE_URL, SUPABASE_ANON_KEY)


def translate_error(exc: BaseException) -> RecordsError:
    """Map a raw client failure onto the error taxonomy."""
    if isinstance(exc, RecordsError):
        return exc

    if isinstance(exc, APIError):
        code = exc.code
        message = exc.message or str(exc)
        details = exc.details
        if code == CODE_NO_ROWS:
            return NotFound(message, code=code, details=details)
        if code in (CODE_UNIQUE_VIOLATION, CODE_FOREIGN_KEY_VIOLATION):
            match = _CONSTRAINT_RE.search(" ".join(str(p) for p in (message, details) if p))
            return Conflict(
                message,
                code=code,
                details=details,
                constraint=match.group(1) if match else None,
            )
        if code == CODE_JWT_EXPIRED:
            return Unauthenticated(message, code=code, details=details)
        return TransportError(message, code=code, details=details)

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return TransportError(str(exc) or "Remote call timed out")

    return TransportError(str(exc) or type(exc).__name__)


@dataclass
class Query:
    """
    Description of one remote read.

    Builder methods mirror the PostgREST client and return ``self`` so queries
    read the same way as direct client chains.
    """
    select: str = "*"
    filters: List[Tuple[str, str, Any]] = field(default_factory=list)
    ordering: List[Tuple[str, bool]] = field(default_factory=list)
    limit_to: Optional[int] = None
    offset: Optional[int] = None
    single: bool = False

    def _filter(self, op: str, column: str, value: Any) -> "Query":
        self.filters.append((op, column, value))
        return self

    def eq(self, column: str, value: Any) -> "Query":
        return self._filter("eq", column, value)

    def gte(self, column: str, value: Any) -> "Query":
        return self._filter("gte", column, value)

    def lte(self, column: str, value: Any) -> "Query":
        return self._filter("lte", column, value)

    def ilike(self, column: str, pattern: str) -> "Query":
        return self._filter("ilike", column, pattern)

    def in_(self, column: str, values: Any) -> "Query":
        return self._filter("in_", column, list(values))

    def is_(self, column: str, value: Any) -> "Query":
        return self._filter("is_", column, value)

    def or_(self, expression: str) -> "Query":
        return self._filter("or_", "", expression)

    def order(self, column: str, desc: bool = False) -> "Query":
        self.ordering.append((column, desc))
        return self

    def limit(self, count: int) -> "Query":
        self.limit_to = count
        return self

    def range(self, start: int, end: int) -> "Query":
        self.offset = start
        self.limit_to = end - start + 1
        return self

    def first(self) -> "Query":
        """Only the first row is wanted; reads return a row or None."""
        self.single = True
        self.limit_to = 1
        return self

    def copy(self) -> "Query":
        return copy.deepcopy(self)

    def scope_tokens(self) -> Tuple[str, ...]:
        """
        Every parameter that shapes the result set, rendered deterministically.
        Filters are conjunctive, so their order does not matter; ordering does.
        """
        tokens = [f"select={self.select}"]
        tokens.extend(sorted(
            f"{op.rstrip('_')}.{column}={wire_value(value)}" for op, column, value in self.filters
        ))
        tokens.extend(f"order={column}.{'desc' if desc else 'asc'}" for column, desc in self.ordering)
        if self.offset is not None:
            tokens.append(f"offset={self.offset}")
        if self.limit_to is not None:
            tokens.append(f"limit={self.limit_to}")
        if self.single:
            tokens.append("single")
        return tuple(tokens)

    def apply_filters(self, builder):
        for op, column, value in self.filters:
            if op == "or_":
                builder = builder.or_(value)
            elif op in _FILTER_OPS:
                builder = getattr(builder, op)(column, value)
            else:
                raise ValueError(f"Unsupported filter operation: {op}")
        return builder

    def apply(self, builder):
        builder = self.apply_filters(builder)
        for column, desc in self.ordering:
            builder = builder.order(column, desc=desc)
        if self.offset is not None and self.limit_to is not None:
            builder = builder.range(self.offset, self.offset + self.limit_to - 1)
        elif self.limit_to is not None:
            builder = builder.limit(self.limit_to)
        return builder


class SupabaseRemote:
    """
    Async facade over the synchronous Supabase client.

    Reads normalize "no rows" to None / [] and never raise for it; every other
    failure surfaces as a RecordsError subclass.
    """

    def __init__(self, client: Client, timeout_sec: float = REMOTE_CALL_TIMEOUT_SEC):
        self._client = client
        self._timeout = timeout_sec

    @property
    def client(self) -> Client:
        return self._client

    async def _execute(self, label: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"[DB] ❌ {label} timed out after {self._timeout}s")
            raise TransportError(f"{label} timed out after {self._timeout}s") from e
        except (APIError, httpx.HTTPError, OSError) as e:
            err = translate_error(e)
            if not isinstance(err, NotFound):
                logger.error(f"[DB] ❌ {label} failed: {err!r}")
            raise err from e

    async def read(self, collection: str, query: Query) -> Any:
        def _run():
            builder = self._client.table(collection).select(query.select)
            return query.apply(builder).execute()

        try:
            res = await self._execute(f"read {collection}", _run)
        except NotFound:
            return None if query.single else []
        rows = res.data or []
        if query.single:
            return rows[0] if rows else None
        return rows

    async def count(self, collection: str, query: Query) -> int:
        def _run():
            builder = self._client.table(collection).select(query.select, count="exact", head=True)
            return query.apply_filters(builder).execute()

        res = await self._execute(f"count {collection}", _run)
        return res.count or 0

    async def insert(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        def _run():
            return self._client.table(collection).insert(payload).execute()

        res = await self._execute(f"insert {collection}", _run)
        data = res.data or []
        if not data:
            raise TransportError(f"Insert into {collection} returned no row")
        logger.info(f"[DB] ✅ Inserted into {collection} id={data[0].get('id')}")
        return data[0]

    async def update(self, collection: str, changes: Dict[str, Any], query: Query) -> List[Dict[str, Any]]:
        def _run():
            builder = self._client.table(collection).update(changes)
            return query.apply_filters(builder).execute()

        res = await self._execute(f"update {collection}", _run)
        return res.data or []

    async def delete(self, collection: str, query: Query) -> List[Dict[str, Any]]:
        def _run():
            builder = self._client.table(collection).delete()
            return query.apply_filters(builder).execute()

        res = await self._execute(f"delete {collection}", _run)
        return res.data or []

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        def _run():
            return self._client.rpc(function, params or {}).execute()

        try:
            res = await self._execute(f"rpc {function}", _run)
        except NotFound:
            return None
        return res.data
