"""
Service modules package.

This package contains the data-access layer for:
- The remote service adapter (Supabase) and session/tenant resolution
- Cached entity facades (patients, appointments, catalog, histories, activities, users)
- Optimistic mutations and locally persisted preferences
"""

from .remote_service import Query, SupabaseRemote, create_supabase_client, translate_error
from .session_service import SessionScope, StaticSessionScope, SupabaseSessionScope
from .data_access import EntityFacade, SingletonRecordFacade
from .optimistic import OptimisticMutationCoordinator, patch_item, toggle_status
from .patient_service import (
    PatientService,
    HeredoFamilialHistoryService,
    pathological_history,
    non_pathological_history,
    gyneco_obstetric_history,
)
from .appointment_service import AppointmentService, BlockedDateService
from .catalog_service import PatologyService
from .activity_service import ActivityService
from .user_service import UserService, UserDirectory
from .preferences_store import PreferencesStore

__all__ = [
    "Query",
    "SupabaseRemote",
    "create_supabase_client",
    "translate_error",
    "SessionScope",
    "StaticSessionScope",
    "SupabaseSessionScope",
    "EntityFacade",
    "SingletonRecordFacade",
    "OptimisticMutationCoordinator",
    "patch_item",
    "toggle_status",
    "PatientService",
    "HeredoFamilialHistoryService",
    "pathological_history",
    "non_pathological_history",
    "gyneco_obstetric_history",
    "AppointmentService",
    "BlockedDateService",
    "PatologyService",
    "ActivityService",
    "UserService",
    "UserDirectory",
    "PreferencesStore",
]
