"""
Configuration and constants for the clinic records data layer.

Contains environment variables, cache lifetimes, table names and the shared logger.
"""

from __future__ import annotations

import os
import logging
from typing import Dict
from dotenv import load_dotenv

# =============================================================================
# Load Environment
# =============================================================================

load_dotenv(".env.local")

# =============================================================================
# STRUCTURED LOGGER
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Mute noisy transport debug logs
logging.getLogger("hpack").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger("clinic_records")
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S"
    ))
    logger.addHandler(handler)

# =============================================================================
# SUPABASE CONFIGURATION
# =============================================================================

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")

# Hard ceiling for a single remote call; exceeding it is a transport failure
REMOTE_CALL_TIMEOUT_SEC = float(os.getenv("REMOTE_CALL_TIMEOUT_SEC", "10"))

# RPC that resolves the caller's business unit (tenant)
TENANT_RPC = os.getenv("TENANT_RPC", "get_idbu")

# =============================================================================
# CACHE LIFETIMES (seconds)
# =============================================================================

_DEFAULT_CACHE_TTLS: Dict[str, int] = {
    "patients": 20 * 60,
    "appointments": 20 * 60,
    "blocked_dates": 10 * 60,
    "patologies": 30 * 60,
    "pathological_history": 10 * 60,
    "non_pathological_history": 5 * 60,
    "gyneco_obstetric": 5 * 60,
    "heredo_familial": 5 * 60,
    "activities": 2 * 60,
    "users": 5 * 60,
}

CACHE_TTLS: Dict[str, int] = {
    namespace: int(os.getenv(f"CACHE_TTL_{namespace.upper()}", str(ttl)))
    for namespace, ttl in _DEFAULT_CACHE_TTLS.items()
}

# Upper bound of live entries per namespace (0 disables the bound)
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "500"))

# =============================================================================
# TABLES & REMOTE PROCEDURES
# =============================================================================

TABLE_PATIENTS = "tcPacientes"
TABLE_APPOINTMENTS = "tcCitas"
TABLE_BLOCKED_DATES = "tcAgendaBloqueada"
TABLE_PATOLOGIES = "tcPatologias"
TABLE_PATHOLOGICAL_HISTORY = "tpPacienteHistPatologica"
TABLE_NON_PATHOLOGICAL_HISTORY = "tpPacienteHistNoPatol"
TABLE_GYNECO_OBSTETRIC = "tpPacienteHistGineObst"
TABLE_HEREDO_FAMILIAL = "tpFcHeredoFamiliar"
TABLE_ACTIVITIES = "tcActividadReciente"
TABLE_BUSINESS_UNITS = "tcBu"
TABLE_USERS = "tcUsuarios"

RPC_SCHEDULE_APPOINTMENT = "agendar_cita"
RPC_CHECK_SLOT = "verificar_slot"
RPC_UPDATE_USER_STATUS = "update_user_status"
RPC_CLEAN_ACTIVITIES = "fn_limpiar_actividades_antiguas"

NON_PATHOLOGICAL_UNIQUE_CONSTRAINT = "unique_patient_non_path_history"

# =============================================================================
# STATUS VALUES
# =============================================================================

USER_STATUSES = ("Activo", "Inactivo")

# =============================================================================
# PERSISTED PREFERENCES
# =============================================================================

PREFERENCES_PATH = os.getenv(
    "PREFERENCES_PATH",
    os.path.join(os.path.expanduser("~"), ".clinic_records", "preferences.json"),
)
