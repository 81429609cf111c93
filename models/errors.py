"""
Closed error taxonomy for the records data layer.

Remote failures are translated into one of these kinds at the adapter
boundary, so callers match on ``kind`` or exception class instead of
sniffing PostgREST codes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    MISSING_TENANT = "missing_tenant"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSPORT = "transport"


class RecordsError(Exception):
    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str, *, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, code={self.code!r}, message={self.message!r})"


class Unauthenticated(RecordsError):
    """No valid session."""
    kind = ErrorKind.UNAUTHENTICATED


class MissingTenant(RecordsError):
    """Authenticated principal without a business unit."""
    kind = ErrorKind.MISSING_TENANT


class NotFound(RecordsError):
    """Expected-empty result. Facades normalize it to None / [] and never let it escape."""
    kind = ErrorKind.NOT_FOUND


class Conflict(RecordsError):
    """Uniqueness or referential constraint violation."""
    kind = ErrorKind.CONFLICT

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Any = None,
        constraint: Optional[str] = None,
    ):
        super().__init__(message, code=code, details=details)
        self.constraint = constraint

    def violates(self, constraint: Optional[str]) -> bool:
        """True when this conflict is about ``constraint`` (any uniqueness conflict when None)."""
        if constraint is None:
            return self.code in (None, "23505")
        haystack = " ".join(str(part) for part in (self.constraint, self.message, self.details) if part)
        return constraint in haystack


class TransportError(RecordsError):
    """Network, timeout, authorization or any other service failure."""
    kind = ErrorKind.TRANSPORT


class ReconcileError(RecordsError):
    """
    The authoritative refetch after a mutation failed.

    ``mutation_error`` holds the write's own failure when the write failed too.
    """
    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, *, mutation_error: Optional[BaseException] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.mutation_error = mutation_error
