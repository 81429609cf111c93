"""
Shared fixtures: an in-memory remote service, a manual clock and a fixed session.
"""

import asyncio
import copy
import itertools
from collections import Counter, defaultdict
from typing import Any, Dict, List, Optional, Tuple

import pytest

from models.errors import Conflict
from models.session import Principal
from records_api import build_records_api
from services.session_service import StaticSessionScope


def _ilike(value: Any, pattern: str) -> bool:
    return pattern.strip("%").lower() in str(value or "").lower()


def _matches(row: Dict[str, Any], filters) -> bool:
    for op, column, value in filters:
        current = row.get(column)
        if op == "eq" and current != value:
            return False
        if op == "in_" and current not in value:
            return False
        if op == "gte" and (current is None or str(current) < str(value)):
            return False
        if op == "lte" and (current is None or str(current) > str(value)):
            return False
        if op == "ilike" and not _ilike(current, value):
            return False
        if op == "is_" and value == "null" and current is not None:
            return False
        if op == "or_":
            clauses = [c.split(".", 2) for c in value.split(",")]
            if not any(_ilike(row.get(col), pattern) for col, _, pattern in clauses):
                return False
    return True


class FakeRemote:
    """
    In-memory stand-in for SupabaseRemote.

    ``errors`` maps an operation name ("read", "insert", "update", ...) to the
    exception it raises; ``read_gate`` holds reads until the event is set.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.unique: Dict[str, Tuple[str, str]] = {}
        self.rpc_results: Dict[str, Any] = {}
        self.rpc_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.errors: Dict[str, BaseException] = {}
        self.calls: Counter = Counter()
        self.read_gate: Optional[asyncio.Event] = None
        self._ids = itertools.count(1)

    def _enter(self, op: str, collection: str = "") -> None:
        self.calls[op] += 1
        self.calls[(op, collection)] += 1
        error = self.errors.get(op)
        if error is not None:
            raise error

    def _select(self, collection: str, query) -> List[Dict[str, Any]]:
        return [row for row in self.tables[collection] if _matches(row, query.filters)]

    async def read(self, collection, query):
        self.calls["read_started"] += 1
        if self.read_gate is not None:
            await self.read_gate.wait()
        self._enter("read", collection)
        rows = [copy.deepcopy(r) for r in self._select(collection, query)]
        for column, desc in reversed(query.ordering):
            rows.sort(key=lambda r: str(r.get(column, "")), reverse=desc)
        start = query.offset or 0
        if query.limit_to is not None:
            rows = rows[start:start + query.limit_to]
        else:
            rows = rows[start:]
        if query.single:
            return rows[0] if rows else None
        return rows

    async def count(self, collection, query):
        self._enter("count", collection)
        return len(self._select(collection, query))

    async def insert(self, collection, payload):
        self._enter("insert", collection)
        unique = self.unique.get(collection)
        if unique is not None:
            column, constraint = unique
            if any(r.get(column) == payload.get(column) for r in self.tables[collection]):
                raise Conflict(
                    f'duplicate key value violates unique constraint "{constraint}"',
                    code="23505",
                    constraint=constraint,
                )
        row = dict(payload)
        row.setdefault("id", f"{collection}-{next(self._ids)}")
        self.tables[collection].append(row)
        return copy.deepcopy(row)

    async def update(self, collection, changes, query):
        self._enter("update", collection)
        updated = []
        for row in self._select(collection, query):
            row.update(changes)
            updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, collection, query):
        self._enter("delete", collection)
        doomed = self._select(collection, query)
        self.tables[collection] = [r for r in self.tables[collection] if r not in doomed]
        return copy.deepcopy(doomed)

    async def rpc(self, function, params=None):
        self._enter("rpc", function)
        self.rpc_calls.append((function, params or {}))
        result = self.rpc_results.get(function)
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            return result(params or {})
        return copy.deepcopy(result)


class ManualClock:

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def principal():
    return Principal(id="user-1", email="recepcion@clinica.test")


@pytest.fixture
def session(principal):
    return StaticSessionScope(principal, "bu-1")


@pytest.fixture
def api(remote, session, clock):
    return build_records_api(remote=remote, session=session, clock=clock)
