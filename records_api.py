"""
Composition root for the clinic records data layer.

Builds one shared cache store, one namespaced TTLCache per entity type, and
the entity facades that read and write through them.

Usage:
    api = build_records_api()
    patients = await api.patients.get_all()
"""

from __future__ import annotations

import inspect
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from supabase import Client

from config import logger, CACHE_TTLS, CACHE_MAX_ENTRIES
from services.activity_service import ActivityService
from services.appointment_service import AppointmentService, BlockedDateService
from services.catalog_service import PatologyService
from services.data_access import EntityFacade
from services.patient_service import (
    PatientService,
    HeredoFamilialHistoryService,
    pathological_history,
    non_pathological_history,
    gyneco_obstetric_history,
)
from services.remote_service import SupabaseRemote, create_supabase_client
from services.session_service import SessionScope, SupabaseSessionScope
from services.user_service import UserService
from utils.cache import TTLCache
from utils.cache_keys import namespace_prefix


def build_caches(
    ttls: Mapping[str, int],
    *,
    max_entries: Optional[int] = CACHE_MAX_ENTRIES,
    clock: Callable[[], float] = time.monotonic,
) -> Dict[str, TTLCache]:
    """One cache per namespace, all sharing a single store."""
    prefixes = {namespace: namespace_prefix(namespace) for namespace in ttls}
    for namespace, prefix in prefixes.items():
        for other, other_prefix in prefixes.items():
            if other != namespace and other_prefix.startswith(prefix):
                raise ValueError(f"Cache namespace {namespace!r} overlaps {other!r}")

    store: "OrderedDict" = OrderedDict()
    return {
        namespace: TTLCache(
            ttl,
            prefixes[namespace],
            store=store,
            max_entries=max_entries,
            clock=clock,
        )
        for namespace, ttl in ttls.items()
    }


@dataclass
class RecordsApi:
    session: SessionScope
    caches: Dict[str, TTLCache]
    patients: PatientService
    appointments: AppointmentService
    blocked_dates: BlockedDateService
    patologies: PatologyService
    pathological_history: EntityFacade
    non_pathological_history: EntityFacade
    gyneco_obstetric: EntityFacade
    heredo_familial: HeredoFamilialHistoryService
    activities: ActivityService
    users: UserService

    def facades(self) -> Dict[str, EntityFacade]:
        return {
            "patients": self.patients,
            "appointments": self.appointments,
            "blocked_dates": self.blocked_dates,
            "patologies": self.patologies,
            "pathological_history": self.pathological_history,
            "non_pathological_history": self.non_pathological_history,
            "gyneco_obstetric": self.gyneco_obstetric,
            "heredo_familial": self.heredo_familial,
            "activities": self.activities,
            "users": self.users,
        }

    def clear_caches(self) -> None:
        for facade in self.facades().values():
            facade.clear()
        logger.info("[CACHE] Cleared every namespace")

    async def sign_out(self) -> None:
        """End the session and drop everything cached for it."""
        sign_out = getattr(self.session, "sign_out", None)
        if sign_out is not None:
            result = sign_out()
            if inspect.isawaitable(result):
                await result
        self.clear_caches()


def build_records_api(
    client: Optional[Client] = None,
    *,
    remote=None,
    session: Optional[SessionScope] = None,
    clock: Callable[[], float] = time.monotonic,
    ttls: Mapping[str, int] = CACHE_TTLS,
    max_entries: Optional[int] = CACHE_MAX_ENTRIES,
) -> RecordsApi:
    """
    Wire the data layer.

    ``remote`` and ``session`` default to the Supabase implementations built
    from ``client`` (itself created from the environment when omitted).
    """
    if remote is None or session is None:
        client = client or create_supabase_client()
        remote = remote or SupabaseRemote(client)
        session = session or SupabaseSessionScope(client, remote)

    missing = [ns for ns in CACHE_TTLS if ns not in ttls]
    if missing:
        raise ValueError(f"No cache lifetime configured for: {', '.join(missing)}")
    caches = build_caches(ttls, max_entries=max_entries, clock=clock)

    api = RecordsApi(
        session=session,
        caches=caches,
        patients=PatientService(remote, session, caches["patients"]),
        appointments=AppointmentService(remote, session, caches["appointments"]),
        blocked_dates=BlockedDateService(remote, session, caches["blocked_dates"]),
        patologies=PatologyService(remote, session, caches["patologies"]),
        pathological_history=pathological_history(remote, session, caches["pathological_history"]),
        non_pathological_history=non_pathological_history(remote, session, caches["non_pathological_history"]),
        gyneco_obstetric=gyneco_obstetric_history(remote, session, caches["gyneco_obstetric"]),
        heredo_familial=HeredoFamilialHistoryService(remote, session, caches["heredo_familial"]),
        activities=ActivityService(remote, session, caches["activities"]),
        users=UserService(remote, session, caches["users"]),
    )
    logger.info(f"[CACHE] Records data layer ready ({len(caches)} namespaces)")
    return api
