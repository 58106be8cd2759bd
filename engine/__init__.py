"""Auslosungs-Modul: Regeln, Engine und Kontoverwaltung."""

from .draw import DrawEngine, DrawOutcome, DrawResult, NotAvailable, NotAvailableReason
from .errors import (
    AlreadyDrawnError,
    AuthenticationError,
    DrawError,
    InvalidGradeSelectionError,
    OutsideWindowError,
    PermissionDeniedError,
    TeacherNotFoundError,
)
from .policy import MAX_USAGE_TOLERANCE, UNASSIGNED_CLASS, PoolTier

__all__ = [
    "DrawEngine",
    "DrawOutcome",
    "DrawResult",
    "NotAvailable",
    "NotAvailableReason",
    "DrawError",
    "AuthenticationError",
    "TeacherNotFoundError",
    "AlreadyDrawnError",
    "OutsideWindowError",
    "InvalidGradeSelectionError",
    "PermissionDeniedError",
    "MAX_USAGE_TOLERANCE",
    "UNASSIGNED_CLASS",
    "PoolTier",
]
