"""
Recent activity feed for a business unit.

Handles:
- Paginated and filtered feed reads (cached per page and filter set)
- Activity counts and period statistics
- Manual activity entries, retention cleanup and per-unit feed settings
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dateutil import parser as dtparser
from dateutil.relativedelta import relativedelta

from config import (
    logger,
    TABLE_ACTIVITIES,
    TABLE_BUSINESS_UNITS,
    RPC_CLEAN_ACTIVITIES,
)
from models.records import (
    ActivityConfig,
    ActivityFilters,
    ActivityStats,
    ActivityType,
    CreateActivityPayload,
    MostActiveUser,
    StatsPeriod,
    or_filter_term,
)
from services.data_access import EntityFacade
from services.remote_service import Query
from services.session_service import SessionScope
from utils.cache import TTLCache

_CONFIG_COLUMNS = {
    "retention_days": "dias_retencion_actividad",
    "realtime_notifications": "notificaciones_realtime",
    "export_activities": "exportar_actividades",
}


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _parse_ts(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _as_utc(value)
    if not value:
        return None
    try:
        return _as_utc(dtparser.isoparse(str(value)))
    except ValueError:
        logger.warning(f"[DB] Unparseable activity timestamp: {value!r}")
        return None


class ActivityService(EntityFacade):

    def __init__(self, remote, session: SessionScope, cache: TTLCache):
        super().__init__(
            remote,
            session,
            cache,
            collection=TABLE_ACTIVITIES,
            order_by=[("created_at", True)],
            user_column="id_usuario",
        )

    def _apply_filters(self, query: Query, filters: Optional[ActivityFilters]) -> Query:
        if filters is None:
            return query
        if filters.types:
            query.in_("tipo_actividad", [t.value for t in filters.types])
        if filters.start:
            query.gte("created_at", _as_utc(filters.start).isoformat())
        if filters.end:
            query.lte("created_at", _as_utc(filters.end).isoformat())
        if filters.user_id:
            query.eq("id_usuario", filters.user_id)
        if filters.patient_id:
            query.eq("id_paciente", filters.patient_id)
        if filters.critical is not None:
            query.eq("es_critico", filters.critical)
        term = or_filter_term(filters.search)
        if term:
            query.or_(
                f"descripcion.ilike.%{term}%,"
                f"descripcion_detalle.ilike.%{term}%,"
                f"nombre_paciente.ilike.%{term}%"
            )
        return query

    async def get_recent(self, limit: int = 10, offset: int = 0, force: bool = False) -> List[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        query = self.ordered(self.base_query(tenant_id)).range(offset, offset + limit - 1)
        return await self.read(tenant_id, "recent", query, force=force)

    async def get_filtered(
        self,
        filters: ActivityFilters,
        limit: int = 50,
        offset: int = 0,
        force: bool = False,
    ) -> List[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        query = self._apply_filters(self.base_query(tenant_id), filters)
        query = self.ordered(query).range(offset, offset + limit - 1)
        return await self.read(tenant_id, "filtered", query, force=force)

    async def get_by_type(self, activity_type: ActivityType, limit: int = 20) -> List[Dict[str, Any]]:
        return await self.get_by("by_type", {"tipo_actividad": ActivityType(activity_type).value}, limit=limit)

    async def get_by_patient(self, patient_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return await self.get_by("by_patient", {"id_paciente": patient_id}, limit=limit)

    async def get_by_date_range(
        self,
        start: datetime,
        end: datetime,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        query = (
            self.base_query(tenant_id)
            .gte("created_at", _as_utc(start).isoformat())
            .lte("created_at", _as_utc(end).isoformat())
        )
        query = self.ordered(query).limit(limit)
        return await self.read(tenant_id, "by_date_range", query)

    async def count(self, filters: Optional[ActivityFilters] = None) -> int:
        _, tenant_id = await self._scope()
        query = self._apply_filters(self.base_query(tenant_id), filters)
        return await self.read(
            tenant_id,
            "count",
            query,
            loader=lambda: self.remote.count(self.collection, query),
        )

    async def get_stats(self, period: StatsPeriod = "day", now: Optional[datetime] = None) -> ActivityStats:
        """Totals for today / last 7 days / last 30 days, per type, and the busiest user."""
        _, tenant_id = await self._scope()
        now = _as_utc(now or datetime.now(timezone.utc))
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        window_start = {
            "day": midnight,
            "week": now - relativedelta(days=7),
            "month": now - relativedelta(months=1),
        }[period]

        query = self.base_query(tenant_id).gte("created_at", window_start.isoformat())
        rows = await self.remote.read(self.collection, query) or []

        week_ago = now - relativedelta(days=7)
        month_ago = now - relativedelta(days=30)
        stats = ActivityStats()
        per_user: Dict[str, Dict[str, Any]] = {}

        for row in rows:
            created = _parse_ts(row.get("created_at"))
            if created is not None:
                if created >= midnight:
                    stats.total_today += 1
                if created >= week_ago:
                    stats.total_week += 1
                if created >= month_ago:
                    stats.total_month += 1

            try:
                stats.by_type[ActivityType(row.get("tipo_actividad"))] += 1
            except ValueError:
                pass

            user_id, user_name = row.get("id_usuario"), row.get("nombre_usuario")
            if user_id and user_name:
                entry = per_user.setdefault(user_id, {"name": user_name, "count": 0})
                entry["count"] += 1

        best: Optional[MostActiveUser] = None
        for user_id, entry in per_user.items():
            if best is None or entry["count"] > best.count:
                best = MostActiveUser(id=user_id, name=entry["name"], count=entry["count"])
        stats.most_active_user = best
        return stats

    async def create_manual(self, payload: Union[CreateActivityPayload, Dict[str, Any]]) -> Dict[str, Any]:
        if not isinstance(payload, CreateActivityPayload):
            payload = CreateActivityPayload.model_validate(payload)
        return await self.create(payload.model_dump(mode="json"))

    async def clean_old(self) -> List[Dict[str, Any]]:
        """Run the retention procedure. Only this tenant's cached feed is dropped."""
        _, tenant_id = await self._scope()
        data = await self.remote.rpc(RPC_CLEAN_ACTIVITIES) or []
        self.invalidate(tenant_id)
        cleaned = [
            {"idbu": item.get("idbu_limpiado"), "deleted": item.get("registros_eliminados", 0)}
            for item in data
        ]
        logger.info(f"[DB] Activity retention cleanup touched {len(cleaned)} business units")
        return cleaned

    async def get_config(self) -> ActivityConfig:
        _, tenant_id = await self._scope()
        query = Query(select=", ".join(_CONFIG_COLUMNS.values())).eq("idBu", tenant_id).first()
        row = await self.remote.read(TABLE_BUSINESS_UNITS, query)
        if not row:
            return ActivityConfig()
        return ActivityConfig(**{field: row.get(column) for field, column in _CONFIG_COLUMNS.items()})

    async def update_config(self, config: ActivityConfig) -> None:
        _, tenant_id = await self._scope()
        changes = {
            column: getattr(config, field)
            for field, column in _CONFIG_COLUMNS.items()
            if getattr(config, field) is not None
        }
        if not changes:
            return
        await self.remote.update(TABLE_BUSINESS_UNITS, changes, Query().eq("idBu", tenant_id))
