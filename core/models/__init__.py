"""Core data models - store-neutral canonical types.

This package contains the canonical workforce entities and the run report /
audit models shared by the API, the CLI and the Temporal worker.
"""

from core.models.canonical import (
    StoreRecord,
    LegacyEmployee,
    MachineSkill,
    Machine,
    LockerAssignment,
    LockerRoom,
    Department,
    Position,
    Role,
    StoreUser,
)

from core.models.refs import (
    ReconciliationReport,
    AuditEvent,
    AuditSeverity,
)

__all__ = [
    "StoreRecord",
    "LegacyEmployee",
    "MachineSkill",
    "Machine",
    "LockerAssignment",
    "LockerRoom",
    "Department",
    "Position",
    "Role",
    "StoreUser",
    "ReconciliationReport",
    "AuditEvent",
    "AuditSeverity",
]
