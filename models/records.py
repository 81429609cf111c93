"""
Pydantic models for request payloads and derived records.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


class ActivityType(str, Enum):
    APPOINTMENT_NEW = "cita_nueva"
    APPOINTMENT_UPDATED = "cita_actualizada"
    APPOINTMENT_CANCELLED = "cita_cancelada"
    APPOINTMENT_COMPLETED = "cita_completada"
    PATIENT_NEW = "paciente_nuevo"
    PATIENT_UPDATED = "paciente_actualizado"
    PRESCRIPTION = "receta"
    CLINICAL_HISTORY = "historia_clinica"
    EVOLUTION = "evolucion"
    DOCUMENT = "documento"
    SYSTEM = "sistema"


StatsPeriod = Literal["day", "week", "month"]


class ActivityFilters(BaseModel):
    types: Optional[List[ActivityType]] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    user_id: Optional[str] = None
    patient_id: Optional[str] = None
    critical: Optional[bool] = None
    search: Optional[str] = None


class CreateActivityPayload(BaseModel):
    tipo_actividad: ActivityType
    descripcion: str
    descripcion_detalle: Optional[str] = None
    id_paciente: Optional[str] = None
    id_entidad: Optional[str] = None
    tipo_entidad: Optional[str] = None
    metadatos: Dict[str, Any] = Field(default_factory=dict)
    es_critico: bool = False
    icono: str = "Activity"
    color: str = "#3B82F6"


class MostActiveUser(BaseModel):
    id: str
    name: str
    count: int


class ActivityStats(BaseModel):
    total_today: int = 0
    total_week: int = 0
    total_month: int = 0
    by_type: Dict[ActivityType, int] = Field(
        default_factory=lambda: {t: 0 for t in ActivityType}
    )
    most_active_user: Optional[MostActiveUser] = None


class ActivityConfig(BaseModel):
    retention_days: Optional[int] = None
    realtime_notifications: Optional[bool] = None
    export_activities: Optional[bool] = None


class AppointmentRequest(BaseModel):
    id_paciente: str
    fecha_cita: date
    hora_cita: str
    motivo: str
    consultorio: int
    duracion_minutos: int
    tipo_consulta: str
    tiempo_evolucion: Optional[int] = None
    unidad_tiempo: Optional[Literal["horas", "dias", "semanas", "meses"]] = None
    sintomas_asociados: List[str] = Field(default_factory=list)
    urgente: bool = False
    notas: Optional[str] = None

    def to_rpc_params(self) -> Dict[str, Any]:
        """Arguments of the scheduling procedure; it derives user and tenant itself."""
        params = self.model_dump(mode="json")
        return {f"p_{name}": value for name, value in params.items()}


class SlotCheck(BaseModel):
    available: bool = False
    reason: str = ""


def clean_search_term(value: Optional[str]) -> Optional[str]:
    """Removes None, blank strings and 'null' literals typed into search boxes."""
    if not value:
        return None
    value = value.strip()
    if not value or value.lower() == "null":
        return None
    return value


def or_filter_term(value: Optional[str]) -> Optional[str]:
    """
    Search term safe to embed in a PostgREST or-filter, or None when nothing is left.

    Commas and parentheses are or-filter syntax, so they become spaces.
    """
    term = clean_search_term(value)
    if term is None:
        return None
    term = re.sub(r"[,()]", " ", term).strip()
    return term or None
