"""
Appointment service.

Handles:
- Appointment list, per-patient and per-day/room reads
- Scheduling through the remote procedure that owns overlap and tenant checks
- Status changes and slot availability checks (never cached)
- Agenda blocks (holidays, closures), soft-deleted
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Union

from config import (
    logger,
    TABLE_APPOINTMENTS,
    TABLE_BLOCKED_DATES,
    RPC_SCHEDULE_APPOINTMENT,
    RPC_CHECK_SLOT,
)
from models.records import AppointmentRequest, SlotCheck
from services.data_access import EntityFacade
from services.session_service import SessionScope
from utils.cache import TTLCache

APPOINTMENT_SELECT = (
    "id, fecha_cita, hora_cita, estado, motivo, notas, urgente, consultorio, "
    "tipo_consulta, tiempo_evolucion, unidad_tiempo, sintomas_asociados, hora_fin, "
    "duracion_minutos, id_paciente, patients:id_paciente(id,Nombre,Paterno,Materno)"
)
APPOINTMENT_DETAIL_SELECT = "*, patients:id_paciente(id,Nombre,Paterno,Materno)"


def _iso_day(value: Union[str, date]) -> str:
    return value.isoformat() if isinstance(value, date) else value


class AppointmentService(EntityFacade):
    """
    Appointments live in ``tcCitas``, whose tenant column is ``idBu`` and user
    column ``id_user``. Every write clears the tenant's whole namespace, which
    covers the old and new patient and day/room lists of a rescheduled
    appointment without looking the original row up first.
    """

    def __init__(self, remote, session: SessionScope, cache: TTLCache):
        super().__init__(
            remote,
            session,
            cache,
            collection=TABLE_APPOINTMENTS,
            select=APPOINTMENT_SELECT,
            detail_select=APPOINTMENT_DETAIL_SELECT,
            order_by=[("fecha_cita", False), ("hora_cita", False)],
            tenant_column="idBu",
            user_column="id_user",
        )

    async def get_by_patient(self, patient_id: Any, force: bool = False) -> List[Dict[str, Any]]:
        return await self.get_by("by_patient", {"id_paciente": patient_id}, force=force)

    async def get_by_date_and_room(
        self,
        day: Union[str, date],
        room: int,
        force: bool = False,
    ) -> List[Dict[str, Any]]:
        _, tenant_id = await self._scope()
        query = (
            self.base_query(tenant_id, APPOINTMENT_DETAIL_SELECT)
            .eq("fecha_cita", _iso_day(day))
            .eq("consultorio", room)
            .order("hora_cita")
        )
        return await self.read(tenant_id, "by_day_room", query, force=force)

    async def schedule(self, request: AppointmentRequest) -> Any:
        """Book through the scheduling procedure; it derives user and tenant server-side."""
        _, tenant_id = await self._scope()
        data = await self.remote.rpc(RPC_SCHEDULE_APPOINTMENT, request.to_rpc_params())
        self.invalidate(tenant_id)
        logger.info(
            f"[DB] ✅ Scheduled appointment patient={request.id_paciente} "
            f"day={request.fecha_cita} room={request.consultorio}"
        )
        return data

    async def change_status(self, appointment_id: Any, status: str) -> Optional[Dict[str, Any]]:
        return await self.update(appointment_id, {"estado": status})

    async def check_slot(
        self,
        day: Union[str, date],
        start_time: str,
        duration_minutes: int,
        room: int,
    ) -> SlotCheck:
        _, tenant_id = await self._scope()
        data = await self.remote.rpc(RPC_CHECK_SLOT, {
            "p_fecha": _iso_day(day),
            "p_hora_inicio": start_time,
            "p_duracion_minutos": duration_minutes,
            "p_consultorio": room,
            "p_idbu": tenant_id,
        })
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            return SlotCheck()
        return SlotCheck.model_validate(data)


class BlockedDateService(EntityFacade):
    """Agenda blocks (holidays, closures). Deleting a block only marks it deleted."""

    def __init__(self, remote, session: SessionScope, cache: TTLCache):
        super().__init__(
            remote,
            session,
            cache,
            collection=TABLE_BLOCKED_DATES,
            order_by="start_date",
            soft_delete=True,
        )
