"""
Staff users of a business unit.

Handles:
- User list and attribute reads
- Status changes, with a fallback to the privileged status procedure
- UserDirectory: the optimistic "toggle active" flow used by the users screen
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from config import logger, TABLE_USERS, RPC_UPDATE_USER_STATUS, USER_STATUSES
from models.errors import NotFound, TransportError
from services.data_access import EntityFacade, utc_now_iso
from services.optimistic import OptimisticMutationCoordinator, toggle_status
from services.remote_service import Query
from services.session_service import SessionScope
from utils.cache import TTLCache

USER_SELECT = "id, nombre, email, telefono, estado, rol, fechaultimoacceso"
USER_ATTRIBUTES_SELECT = "nombre, email, telefono, rol, estado, idbu, deleted_at"


class UserService(EntityFacade):
    """
    Row-level security limits the list to the caller's business unit, so reads
    carry no tenant filter of their own.
    """

    def __init__(self, remote, session: SessionScope, cache: TTLCache):
        super().__init__(
            remote,
            session,
            cache,
            collection=TABLE_USERS,
            select=USER_SELECT,
            order_by="nombre",
            scope_reads_to_tenant=False,
            user_column=None,
            stamp_updated_at=True,
        )

    async def get_attributes(self, user_id: str, force: bool = False) -> Optional[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        query = Query(select=USER_ATTRIBUTES_SELECT).eq("idusuario", user_id).first()
        return await self.read(tenant_id, "attributes", query, force=force)

    async def set_status(self, user_id: str, status: str) -> Dict[str, Any]:
        if status not in USER_STATUSES:
            raise ValueError(f"Unknown user status: {status}")
        _, tenant_id = await self._scope()

        rows: List[Dict[str, Any]] = []
        try:
            rows = await self.remote.update(
                self.collection,
                {"estado": status, "updated_at": utc_now_iso()},
                Query().eq(self.id_column, user_id),
            )
        except TransportError as e:
            logger.warning(f"[DB] Direct status update for user {user_id} rejected: {e.message}")

        if not rows:
            logger.info(f"[DB] Falling back to {RPC_UPDATE_USER_STATUS} for user {user_id}")
            await self.remote.rpc(RPC_UPDATE_USER_STATUS, {"user_id": user_id, "new_status": status})

        self.invalidate(tenant_id, record_id=user_id)
        logger.info(f"[DB] ✅ User {user_id} is now {status}")
        return rows[0] if rows else {self.id_column: user_id, "estado": status}


class UserDirectory(OptimisticMutationCoordinator):
    """Visible user list whose status toggles show up before the server confirms them."""

    def __init__(
        self,
        users: UserService,
        on_change: Optional[Callable[[List[Dict[str, Any]]], None]] = None,
    ):
        super().__init__(lambda: users.get_all(force=True), on_change)
        self.users = users

    async def toggle_status(self, user_id: str) -> Dict[str, Any]:
        chosen: Dict[str, str] = {}

        # Runs under the coordinator lock, so queued toggles see the previous result
        def apply(rows):
            current = next((u for u in rows if u.get("id") == user_id), None)
            if current is None:
                raise NotFound(f"User {user_id} is not in the directory")
            active, inactive = USER_STATUSES
            chosen["estado"] = inactive if current.get("estado") == active else active
            return toggle_status(rows, user_id, values=USER_STATUSES)

        return await self.run(apply, lambda: self.users.set_status(user_id, chosen["estado"]))
