"""Core canonical data models - store-neutral workforce entities.

These models represent records of the remote entity store after field-name
normalization. Wire field names (``nombre``, ``taquilla_numero``, ...) are
resolved to these names by ``reconciliation.normalize``; nothing here knows
about the wire format.

Every field is optional and every parser is lenient, so validating a
normalized record never raises.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional, Dict, List

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers (tolerate whatever the store or legacy imports hold)
# =============================================================================

def _parse_str(value):
    """Parse a scalar into a stripped string; blanks and containers become None."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    s = str(value).strip()
    return s or None


def _parse_int(value):
    """Parse integer from various formats, None when not numeric or not finite."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        s = value.strip().replace(",", "")
        if s == "":
            return None
        try:
            value = float(s)
        except ValueError:
            return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        try:
            return int(value)
        except (ValueError, OverflowError):
            return None
    return None


def _parse_timestamp(value):
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _parse_bool(value):
    """Parse a flag; None when absent or not recognisable."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 if math.isfinite(value) else None
    if isinstance(value, str):
        s = value.strip().lower()
        if s in ("1", "true", "yes", "si", "sí", "on"):
            return True
        if s in ("0", "false", "no", "off"):
            return False
    return None


def _parse_str_list(value):
    """Parse a list of scalar references, dropping blanks and containers."""
    if not isinstance(value, (list, tuple)):
        return []
    parsed = [_parse_str(item) for item in value]
    return [item for item in parsed if item is not None]


StrValue = Annotated[Optional[str], BeforeValidator(_parse_str)]
IntValue = Annotated[Optional[int], BeforeValidator(_parse_int)]
TimestampValue = Annotated[Optional[datetime], BeforeValidator(_parse_timestamp)]
BoolValue = Annotated[Optional[bool], BeforeValidator(_parse_bool)]
StrListValue = Annotated[List[str], BeforeValidator(_parse_str_list)]


# =============================================================================
# Base Model
# =============================================================================

class StoreRecord(BaseModel):
    """Base for every record read from the remote entity store."""
    model_config = ConfigDict(extra="ignore")

    id: StrValue = Field(None, description="Storage identifier assigned by the store")
    created_date: TimestampValue = Field(None, description="Creation timestamp")


# =============================================================================
# Employees & Skills
# =============================================================================

class LegacyEmployee(StoreRecord):
    """Employee master record with its legacy positional fields.

    ``machine_slots`` maps slot number to the raw machine reference of every
    non-empty ``maquina_<n>`` field.
    """
    employee_id: StrValue = Field(None, description="Stable employee identifier")
    employee_code: StrValue = Field(None, description="Employee code")
    name: StrValue = Field(None, description="Full name")
    department: StrValue = Field(None, description="Department name")
    position: StrValue = Field(None, description="Position name")
    locker_room: StrValue = Field(None, description="Legacy locker room/section")
    locker_number: StrValue = Field(None, description="Legacy locker number")
    machine_slots_status: StrValue = Field(None, description="Lifecycle flag of the slot fields")
    machine_slots: Dict[int, str] = Field(default_factory=dict, description="Slot number -> machine ref")

    @property
    def label(self) -> str:
        return self.name or self.employee_code or self.id or "?"


class MachineSkill(StoreRecord):
    """Canonical employee/machine assignment (EmployeeMachineSkill)."""
    employee_id: StrValue = Field(None, description="Owning employee")
    machine_id: StrValue = Field(None, description="Assigned machine")
    preference_order: IntValue = Field(None, description="Preference order (1 = preferred)")
    competency_level: StrValue = Field(None, description="Competency level")

    @property
    def missing_fields(self) -> List[str]:
        """Quality fields that are absent on this assignment."""
        missing = []
        if self.competency_level is None:
            missing.append("competency_level")
        if self.preference_order is None:
            missing.append("preference_order")
        return missing


class Machine(StoreRecord):
    """Machine catalog entry."""
    code: StrValue = Field(None, description="Machine code")
    name: StrValue = Field(None, description="Machine name")
    legacy_id: StrValue = Field(None, description="Identifier used by legacy records")


# =============================================================================
# Machines & Processes
# =============================================================================

class LegacyMachine(StoreRecord):
    """Record of the legacy ``Machine`` collection, superseded by the master."""
    code: StrValue = Field(None, description="Machine code (case-insensitive key)")
    name: StrValue = Field(None, description="Machine name")
    order: IntValue = Field(None, description="Display order")
    process_ids: StrListValue = Field(default_factory=list, description="Processes the machine can run")


class Process(StoreRecord):
    name: StrValue = Field(None, description="Process name")
    code: StrValue = Field(None, description="Process code")
    required_operators: IntValue = Field(None, description="Operators needed")
    active: BoolValue = Field(None, description="False only when explicitly disabled")


class MachineProcess(StoreRecord):
    """Link between a legacy machine and a process, with per-machine overrides."""
    machine_id: StrValue = Field(None, description="Legacy machine")
    process_id: StrValue = Field(None, description="Process")
    required_operators: IntValue = Field(None, description="Operators needed on this machine")
    order: IntValue = Field(None, description="Order among the machine's processes")
    active: BoolValue = Field(None, description="False only when explicitly disabled")


class MachineReference(StoreRecord):
    """Any record that points at a machine through ``machine_id``."""
    machine_id: StrValue = Field(None, description="Referenced machine")


# =============================================================================
# Lockers
# =============================================================================

class LockerAssignment(StoreRecord):
    """Locker held by one employee."""
    employee_id: StrValue = Field(None, description="Stable employee identifier")
    locker_room: StrValue = Field(None, description="Locker room/section")
    locker_number: StrValue = Field(None, description="Locker number")


class LockerRoom(StoreRecord):
    """Locker room configuration (LockerRoomConfig)."""
    name: StrValue = Field(None, description="Locker room/section name")
    capacity: IntValue = Field(None, description="Installed lockers")


# =============================================================================
# Organization
# =============================================================================

class Department(StoreRecord):
    name: StrValue = Field(None, description="Department name")
    code: StrValue = Field(None, description="Short code")
    parent_id: StrValue = Field(None, description="Parent department")


class Position(StoreRecord):
    name: StrValue = Field(None, description="Position name")
    department_id: StrValue = Field(None, description="Owning department")
    department_name: StrValue = Field(None, description="Denormalized department name")


class Role(StoreRecord):
    code: StrValue = Field(None, description="Role code (natural key)")
    name: StrValue = Field(None, description="Display name")
    level: IntValue = Field(None, description="Privilege level")


# =============================================================================
# Identity
# =============================================================================

class StoreUser(BaseModel):
    """Authenticated caller as reported by the store's auth endpoint."""
    model_config = ConfigDict(extra="ignore")

    id: StrValue = None
    email: StrValue = None
    full_name: StrValue = None
    role: StrValue = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
