"""
Optimistic mutation state.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MutationPhase(str, Enum):
    IDLE = "idle"
    APPLYING = "applying"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass
class OptimisticSnapshot:
    """
    Lives for one mutation attempt.

    ``confirmed`` is a private copy of the last authoritative list taken before
    the tentative patch, ``tentative`` is what the UI shows while the write is
    in flight.
    """
    confirmed: List[Dict[str, Any]]
    tentative: List[Dict[str, Any]] = field(default_factory=list)
    phase: MutationPhase = MutationPhase.IDLE
    error: Optional[BaseException] = None

    @classmethod
    def take(cls, confirmed: List[Dict[str, Any]]) -> "OptimisticSnapshot":
        return cls(confirmed=copy.deepcopy(confirmed))
