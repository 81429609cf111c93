"""
Optimistic mutation coordinator.

Apply a tentative change to the visible list, run the remote write, then
refetch the authoritative list whatever the outcome. The refetch replaces the
tentative list on success and on failure alike, so server-derived fields
(timestamps, computed flags) are never guessed.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from config import logger
from models.errors import ReconcileError
from models.state import MutationPhase, OptimisticSnapshot

Rows = List[Dict[str, Any]]


def patch_item(items: Sequence[Dict[str, Any]], item_id: Any, id_field: str = "id", **changes) -> Rows:
    """Copy of ``items`` with ``changes`` merged into the row whose id matches."""
    return [
        {**item, **changes} if item.get(id_field) == item_id else dict(item)
        for item in items
    ]


def toggle_status(
    items: Sequence[Dict[str, Any]],
    item_id: Any,
    field: str = "estado",
    values: Sequence[str] = ("Activo", "Inactivo"),
    id_field: str = "id",
) -> Rows:
    """Flip ``field`` between the two ``values`` on the matching row."""
    on, off = values
    return [
        {**item, field: off if item.get(field) == on else on} if item.get(id_field) == item_id else dict(item)
        for item in items
    ]


class OptimisticMutationCoordinator:
    """
    Owns the visible state of one collection.

    Phase per attempt: IDLE -> APPLYING -> CONFIRMED | ROLLED_BACK -> IDLE.
    Attempts on the same coordinator run one at a time.
    """

    def __init__(
        self,
        reconcile: Callable[[], Awaitable[Rows]],
        on_change: Optional[Callable[[Rows], None]] = None,
    ):
        self._reconcile = reconcile
        self._on_change = on_change
        self._confirmed: Rows = []
        self._state: Rows = []
        self._phase = MutationPhase.IDLE
        self._lock = asyncio.Lock()
        self.last_error: Optional[BaseException] = None

    @property
    def state(self) -> Rows:
        return self._state

    @property
    def confirmed(self) -> Rows:
        return self._confirmed

    @property
    def phase(self) -> MutationPhase:
        return self._phase

    def _publish(self, rows: Rows) -> None:
        self._state = rows
        if self._on_change is not None:
            self._on_change(rows)

    async def load(self) -> Rows:
        """Initial authoritative fetch."""
        async with self._lock:
            rows = list(await self._reconcile())
            self._confirmed = copy.deepcopy(rows)
            self._publish(rows)
            return rows

    async def run(
        self,
        apply: Callable[[Rows], Rows],
        commit: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Run one optimistic mutation and return the commit's result.

        Raises the commit error after reconciling when the write fails, and
        ReconcileError (with the last confirmed state restored) when the
        refetch fails.
        """
        async with self._lock:
            snapshot = OptimisticSnapshot.take(self._confirmed)
            snapshot.tentative = apply(copy.deepcopy(self._state))
            snapshot.phase = MutationPhase.APPLYING
            self._phase = MutationPhase.APPLYING
            self._publish(snapshot.tentative)

            result = None
            try:
                result = await commit()
                snapshot.phase = MutationPhase.CONFIRMED
                logger.debug("[OPTIMISTIC] Write confirmed; reconciling")
            except asyncio.CancelledError:
                self._publish(copy.deepcopy(snapshot.confirmed))
                self._phase = MutationPhase.IDLE
                logger.warning("[OPTIMISTIC] Write cancelled; restored last confirmed state")
                raise
            except Exception as e:
                snapshot.phase = MutationPhase.ROLLED_BACK
                snapshot.error = e
                logger.warning(f"[OPTIMISTIC] Write failed ({e}); rolling back to server state")
            self._phase = snapshot.phase

            try:
                fresh = list(await self._reconcile())
            except Exception as e:
                self._confirmed = snapshot.confirmed
                self._publish(copy.deepcopy(snapshot.confirmed))
                self._phase = MutationPhase.IDLE
                self.last_error = ReconcileError(
                    f"Could not refresh after mutation: {e}",
                    mutation_error=snapshot.error,
                )
                logger.error(f"[OPTIMISTIC] ❌ {self.last_error.message}; kept last confirmed state")
                raise self.last_error from e

            self._confirmed = copy.deepcopy(fresh)
            self._publish(fresh)
            self._phase = MutationPhase.IDLE

            if snapshot.error is not None:
                self.last_error = snapshot.error
                raise snapshot.error
            self.last_error = None
            return result
