"""Field-name and value normalization for store records.

Legacy imports and several generations of the UI wrote the same concept
under different keys (``nivel_competencia`` / ``nivel_habilidad``,
``codigo_empleado`` / ``codigo``, ...). Each canonical model has ONE mapping
table below: canonical field -> source keys in priority order. The table is
consulted once, when a raw record is ingested; the rest of the pipeline only
sees canonical models.

The first key of every list is the wire name used when writing the field.

Every function here is pure and total: malformed input yields empty output,
never an exception.

Examples:
    {"nombre": "ANA", "maquina_1": "M7", "maquina_2": "", "maquina_3": "M3"}
        -> LegacyEmployee(name="ANA", machine_slots={1: "M7", 3: "M3"})
    {"nivel_habilidad": "Experto", "orden": "2"}
        -> MachineSkill(competency_level="Experto", preference_order=2)
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar

from core.models.canonical import (
    StoreRecord,
    LegacyEmployee,
    MachineSkill,
    Machine,
    LegacyMachine,
    Process,
    MachineProcess,
    MachineReference,
    LockerAssignment,
    LockerRoom,
    Department,
    Position,
    Role,
)


# =============================================================================
# Collections
# =============================================================================

EMPLOYEES = "EmployeeMasterDatabase"
SKILLS = "EmployeeMachineSkill"
MACHINES = "MachineMasterDatabase"
LEGACY_MACHINES = "Machine"
PROCESSES = "Process"
MACHINE_PROCESSES = "MachineProcess"
MAINTENANCE = "MaintenanceSchedule"
MACHINE_ASSIGNMENTS = "MachineAssignment"
MACHINE_PLANNING = "MachinePlanning"
MACHINE_STATUS = "MachineStatus"
LOCKERS = "LockerAssignment"
LOCKER_ROOMS = "LockerRoomConfig"
DEPARTMENTS = "Department"
POSITIONS = "Position"
ROLES = "Role"


# =============================================================================
# Schema Mapping Table
# =============================================================================

COMMON_FIELDS: Dict[str, List[str]] = {
    "id": ["id", "_id"],
    "created_date": ["created_date", "created_at", "createdAt"],
}

FIELD_MAPS: Dict[Type[StoreRecord], Dict[str, List[str]]] = {
    LegacyEmployee: {
        "employee_id": ["employee_id"],
        "employee_code": ["codigo_empleado", "codigo", "employee_code"],
        "name": ["nombre", "name", "full_name"],
        "department": ["departamento", "department"],
        "position": ["puesto", "position"],
        "locker_room": ["taquilla_vestuario", "vestuario", "locker_room"],
        "locker_number": ["taquilla_numero", "numero_taquilla", "locker_number"],
        "machine_slots_status": ["machine_slots_status"],
    },
    MachineSkill: {
        "employee_id": ["employee_id", "empleado_id"],
        "machine_id": ["machine_id", "maquina_id"],
        "preference_order": ["orden_preferencia", "orden", "preference_order"],
        "competency_level": ["nivel_competencia", "nivel_habilidad", "competency_level"],
    },
    Machine: {
        "code": ["codigo_maquina", "codigo", "code"],
        "name": ["nombre", "name"],
        "legacy_id": ["machine_id_legacy", "legacy_id"],
    },
    LegacyMachine: {
        "code": ["codigo", "code"],
        "name": ["nombre", "name"],
        "order": ["orden", "order"],
        "process_ids": ["procesos_ids"],
    },
    Process: {
        "name": ["nombre", "name"],
        "code": ["codigo", "code"],
        "required_operators": ["operadores_requeridos"],
        "active": ["activo", "active"],
    },
    MachineProcess: {
        "machine_id": ["machine_id"],
        "process_id": ["process_id"],
        "required_operators": ["operadores_requeridos"],
        "order": ["orden", "order"],
        "active": ["activo", "active"],
    },
    MachineReference: {
        "machine_id": ["machine_id"],
    },
    LockerAssignment: {
        "employee_id": ["employee_id"],
        "locker_room": ["vestuario", "locker_room"],
        "locker_number": ["numero_taquilla_actual", "numero_taquilla", "locker_number"],
    },
    LockerRoom: {
        "name": ["vestuario", "name"],
        "capacity": ["numero_taquillas_instaladas", "capacity"],
    },
    Department: {
        "name": ["name", "nombre"],
        "code": ["code", "codigo"],
        "parent_id": ["parent_id"],
    },
    Position: {
        "name": ["name", "nombre"],
        "department_id": ["department_id"],
        "department_name": ["department_name"],
    },
    Role: {
        "code": ["code", "codigo"],
        "name": ["name", "nombre"],
        "level": ["level", "nivel"],
    },
}

SLOT_FIELD = re.compile(r"^maquina_(\d+)$")
SLOT_LIST_FIELD = "maquinas"

T = TypeVar("T", bound=StoreRecord)


def _is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def resolve_field(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the value of the first populated key, None if none is."""
    for key in keys:
        value = raw.get(key)
        if _is_populated(value):
            return value
    return None


def wire_field(model: Type[StoreRecord], field_name: str) -> str:
    """Key under which ``field_name`` of ``model`` is written to the store."""
    keys = FIELD_MAPS.get(model, {}).get(field_name) or COMMON_FIELDS.get(field_name)
    return keys[0] if keys else field_name


def to_wire(model: Type[StoreRecord], fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate canonical field names into wire names for a write."""
    return {wire_field(model, name): value for name, value in fields.items()}


def normalize_name(value: Optional[str]) -> str:
    """Uppercase and collapse whitespace; used for names and natural keys."""
    if not value:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip().upper()


# =============================================================================
# Record Normalization
# =============================================================================

def machine_slots(raw: Mapping[str, Any]) -> Dict[int, str]:
    """Extract non-empty machine slots, keyed by slot number.

    Numbered ``maquina_<n>`` fields are read without an upper bound. An
    explicit ``maquinas`` list is used only when no numbered slot is set.
    """
    slots: Dict[int, str] = {}
    for key, value in raw.items():
        match = SLOT_FIELD.match(str(key))
        if not match or not _is_populated(value) or isinstance(value, (dict, list)):
            continue
        slot = int(match.group(1))
        if slot >= 1:
            slots[slot] = str(value).strip()

    if not slots:
        listed = raw.get(SLOT_LIST_FIELD)
        if isinstance(listed, list):
            for index, value in enumerate(listed, start=1):
                if _is_populated(value) and not isinstance(value, (dict, list)):
                    slots[index] = str(value).strip()

    return dict(sorted(slots.items()))


def normalize_record(model: Type[T], raw: Any) -> T:
    """Build a canonical model from a raw store record."""
    if not isinstance(raw, Mapping):
        return model()

    data: Dict[str, Any] = {}
    for field_name, keys in {**COMMON_FIELDS, **FIELD_MAPS.get(model, {})}.items():
        data[field_name] = resolve_field(raw, keys)

    if model is LegacyEmployee:
        data["machine_slots"] = machine_slots(raw)

    return model.model_validate(data)


def normalize_records(model: Type[T], raws: Iterable[Any]) -> List[T]:
    return [normalize_record(model, raw) for raw in raws or []]


def normalize_assignment(raw: Any) -> MachineSkill:
    """Normalize an EmployeeMachineSkill record (competency alias resolution)."""
    return normalize_record(MachineSkill, raw)


# =============================================================================
# Legacy Slots -> Pairs
# =============================================================================

@dataclass(frozen=True)
class SkillPair:
    """One (employee, machine) association derived from a legacy slot."""
    employee_id: str
    machine_id: str
    preference_order: int


def legacy_machine_pairs(employee: LegacyEmployee) -> List[SkillPair]:
    """Emit one pair per non-empty slot, in slot order.

    The slot number is the preference order. Duplicated machines are kept
    here; the reconciler decides which slot wins.

    A record without an ``id`` yields no pairs even when its slots are
    populated, since the pairs could not be attached to anything. The skills
    job reports such records as ``missing_record_id``.
    """
    if not employee.id:
        return []
    return [
        SkillPair(employee_id=employee.id, machine_id=machine_ref, preference_order=slot)
        for slot, machine_ref in sorted(employee.machine_slots.items())
    ]


class MachineCatalog:
    """Resolves machine references to machine master ids.

    A reference resolves when it is a master id, when a master record names
    it as ``machine_id_legacy``, or when it is the id of a legacy ``Machine``
    whose code matches a master code (case-insensitive).
    """

    def __init__(self, machines: Iterable[Machine], legacy_machines: Iterable[LegacyMachine] = ()):
        self._ids = set()
        self._legacy: Dict[str, str] = {}
        self._codes: Dict[str, str] = {}
        for machine in machines:
            if not machine.id:
                continue
            self._ids.add(machine.id)
            if machine.legacy_id:
                self._legacy.setdefault(machine.legacy_id, machine.id)
            if machine.code:
                self._codes.setdefault(machine.code.lower(), machine.id)

        self._legacy_codes: Dict[str, str] = {
            m.id: m.code.lower() for m in legacy_machines if m.id and m.code
        }

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, machine_id: object) -> bool:
        return machine_id in self._ids

    def by_legacy_id(self, ref: Optional[str]) -> Optional[str]:
        return self._legacy.get(ref) if ref else None

    def by_code(self, code: Optional[str]) -> Optional[str]:
        return self._codes.get(code.lower()) if code else None

    def resolve(self, ref: Optional[str]) -> Optional[str]:
        if not ref:
            return None
        if ref in self._ids:
            return ref
        if ref in self._legacy:
            return self._legacy[ref]
        return self.by_code(self._legacy_codes.get(ref))


def resolve_machine_refs(
    pairs: Iterable[SkillPair],
    catalog: Optional[MachineCatalog],
) -> Tuple[List[SkillPair], List[SkillPair]]:
    """Split pairs into (resolved, unresolved) against the machine catalog.

    Resolved pairs carry the catalog's machine id. Without a catalog every
    pair is returned unchanged as resolved.
    """
    if catalog is None:
        return list(pairs), []

    resolved: List[SkillPair] = []
    unresolved: List[SkillPair] = []
    for pair in pairs:
        machine_id = catalog.resolve(pair.machine_id)
        if machine_id is None:
            unresolved.append(pair)
        elif machine_id != pair.machine_id:
            resolved.append(SkillPair(pair.employee_id, machine_id, pair.preference_order))
        else:
            resolved.append(pair)
    return resolved, unresolved
