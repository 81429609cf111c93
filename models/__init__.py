"""
Data models for the clinic records data layer.
"""

from .errors import (
    ErrorKind,
    RecordsError,
    Unauthenticated,
    MissingTenant,
    NotFound,
    Conflict,
    TransportError,
    ReconcileError,
)
from .session import Principal
from .state import MutationPhase, OptimisticSnapshot
from .records import (
    ActivityType,
    ActivityFilters,
    ActivityStats,
    ActivityConfig,
    CreateActivityPayload,
    MostActiveUser,
    AppointmentRequest,
    SlotCheck,
    clean_search_term,
    or_filter_term,
)
from .preferences import Preferences, DEFAULT_FONTS

__all__ = [
    "ErrorKind",
    "RecordsError",
    "Unauthenticated",
    "MissingTenant",
    "NotFound",
    "Conflict",
    "TransportError",
    "ReconcileError",
    "Principal",
    "MutationPhase",
    "OptimisticSnapshot",
    "ActivityType",
    "ActivityFilters",
    "ActivityStats",
    "ActivityConfig",
    "CreateActivityPayload",
    "MostActiveUser",
    "AppointmentRequest",
    "SlotCheck",
    "clean_search_term",
    "or_filter_term",
    "Preferences",
    "DEFAULT_FONTS",
]
