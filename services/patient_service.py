"""
Patient records and clinical history sections.

Handles:
- Patient list/detail reads and writes (broad namespace invalidation)
- Per-patient history sections: pathological, non-pathological, gyneco-obstetric
  (one row per patient, targeted invalidation)
- Heredo-familial history (one row per family member)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from config import (
    logger,
    TABLE_PATIENTS,
    TABLE_PATHOLOGICAL_HISTORY,
    TABLE_NON_PATHOLOGICAL_HISTORY,
    TABLE_GYNECO_OBSTETRIC,
    TABLE_HEREDO_FAMILIAL,
    NON_PATHOLOGICAL_UNIQUE_CONSTRAINT,
)
from models.errors import TransportError
from services.data_access import EntityFacade, SingletonRecordFacade
from services.session_service import SessionScope
from utils.cache import TTLCache

PATIENT_LIST_SELECT = "id, Nombre, Paterno, Materno, FechaNacimiento, Sexo, Telefono, Email"
PATIENT_DETAIL_SELECT = "*, user_id, idbu"

HEREDO_FAMILIAL_SELECT = (
    "id, created_at, updated_at, patient_id, id_usuario, idbu, "
    "miembro_fam, estado_vital, patologias, notas"
)


class PatientService(EntityFacade):

    def __init__(self, remote, session: SessionScope, cache: TTLCache):
        super().__init__(
            remote,
            session,
            cache,
            collection=TABLE_PATIENTS,
            select=PATIENT_LIST_SELECT,
            detail_select=PATIENT_DETAIL_SELECT,
            order_by=[("Paterno", False), ("Nombre", False)],
        )

    async def update(self, record_id: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
        result = await super().update(record_id, payload)
        if result is None:
            logger.error(f"[DB] Patient {record_id} update returned no row")
            raise TransportError(f"Patient {record_id} could not be updated")
        return result


def pathological_history(remote, session: SessionScope, cache: TTLCache) -> SingletonRecordFacade:
    """
    Pathological history. Absence is cached on purpose: most patients have no
    record yet and the section is opened on every chart view.
    """
    return SingletonRecordFacade(
        remote,
        session,
        cache,
        collection=TABLE_PATHOLOGICAL_HISTORY,
        cache_not_found=True,
    )


def non_pathological_history(remote, session: SessionScope, cache: TTLCache) -> SingletonRecordFacade:
    return SingletonRecordFacade(
        remote,
        session,
        cache,
        collection=TABLE_NON_PATHOLOGICAL_HISTORY,
        unique_constraint=NON_PATHOLOGICAL_UNIQUE_CONSTRAINT,
    )


def gyneco_obstetric_history(remote, session: SessionScope, cache: TTLCache) -> SingletonRecordFacade:
    return SingletonRecordFacade(
        remote,
        session,
        cache,
        collection=TABLE_GYNECO_OBSTETRIC,
    )


class HeredoFamilialHistoryService(EntityFacade):
    """One row per family member; any write clears the tenant's namespace."""

    def __init__(self, remote, session: SessionScope, cache: TTLCache):
        super().__init__(
            remote,
            session,
            cache,
            collection=TABLE_HEREDO_FAMILIAL,
            select=HEREDO_FAMILIAL_SELECT,
            order_by=[("created_at", True)],
            user_column="id_usuario",
            stamp_updated_at=True,
        )

    async def get_by_patient(self, patient_id: Any, force: bool = False) -> List[Dict[str, Any]]:
        return await self.get_by("by_patient", {"patient_id": patient_id}, force=force)

    async def create_or_update(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record_id = payload.get("id")
        if record_id:
            changes = {k: v for k, v in payload.items() if k != "id"}
            return await self.update(record_id, changes)
        return await self.create(payload)
