"""Domain models and the date-scoped schedule aggregate."""

from .models import (
    Assignment,
    Program,
    Provenance,
    ProvenanceKind,
    Ratio,
    Role,
    Session,
    Staff,
    Student,
)
from .schedule import ChangeSet, Schedule, ScheduleOverlay, ScheduleView

__all__ = [
    "Assignment",
    "Program",
    "Provenance",
    "ProvenanceKind",
    "Ratio",
    "Role",
    "Session",
    "Staff",
    "Student",
    "ChangeSet",
    "Schedule",
    "ScheduleOverlay",
    "ScheduleView",
]
