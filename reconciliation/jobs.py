"""Reconciliation jobs and the run driver.

A job names one reconciliation target: the collections it reads and how it
turns that snapshot into decisions. ``run_job`` drives the shared pipeline
for any registered job:

    read -> normalize -> compare -> reconcile -> execute -> report

Jobs:
- skills: legacy machine slots -> EmployeeMachineSkill
- skills-verify: same analysis, never writes
- machines: legacy Machine -> MachineMasterDatabase, duplicate codes renamed
- machine-references: legacy machine ids -> master ids in dependent collections
- machines-verify: references still not pointing at a master record
- lockers: locker data of the employee master -> LockerAssignment
- departments: department names on positions, renames, missing departments
- roles: duplicate role codes and default role seeding
"""

import abc
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from connectors.entity_store.base import EntityStore
from core.audit.events import AuditEventType, AuditLogger
from core.errors import DataQualityWarning, UnknownJobError
from core.models.canonical import (
    Department,
    LegacyEmployee,
    LegacyMachine,
    LockerAssignment,
    LockerRoom,
    Machine,
    MachineProcess,
    MachineReference,
    MachineSkill,
    Position,
    Process,
    Role,
)
from core.models.refs import ReconciliationReport
from core.observability.logging import get_logger, with_correlation
from reconciliation.compare import SkillComparison, compare_skills, find_incomplete
from reconciliation.decisions import (
    Action,
    DEFAULT_COMPETENCY,
    DEPRECATED,
    Decision,
    duplicate_deletions,
    reconcile_single_valued,
    reconcile_skills,
    resolve_duplicates,
)
from reconciliation.defaults import (
    DEFAULT_DEPARTMENT_COLOR,
    DEFAULT_PROCESS_OPERATORS,
    DEFAULT_ROLES,
    MACHINE_COPIED_FIELDS,
    MACHINE_LIST_FIELDS,
    MACHINE_MASTER_DEFAULTS,
    locker_room_capacity,
)
from reconciliation.executor import MigrationExecutor
from reconciliation.normalize import (
    DEPARTMENTS,
    EMPLOYEES,
    LEGACY_MACHINES,
    LOCKER_ROOMS,
    LOCKERS,
    MACHINE_ASSIGNMENTS,
    MACHINE_PLANNING,
    MACHINE_PROCESSES,
    MACHINE_STATUS,
    MACHINES,
    MAINTENANCE,
    POSITIONS,
    PROCESSES,
    ROLES,
    SKILLS,
    MachineCatalog,
    legacy_machine_pairs,
    normalize_name,
    normalize_records,
    resolve_machine_refs,
)
from reconciliation.reader import CollectionSpec, read_collections
from reconciliation.report import build_report

logger = get_logger(__name__)


def option_bool(options: Mapping[str, Any], key: str, default: bool = False) -> bool:
    """Read a boolean option that may arrive as a string (CLI, query)."""
    value = options.get(key, default)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class JobPlan:
    """Everything a job decided from one snapshot."""
    decisions: List[Decision] = field(default_factory=list)
    warnings: List[DataQualityWarning] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Registry
# =============================================================================

class JobRegistry:
    """Registry of available reconciliation jobs."""

    def __init__(self) -> None:
        self._by_name: Dict[str, Type["ReconciliationJob"]] = {}

    def register(self, job_cls: Type["ReconciliationJob"]) -> Type["ReconciliationJob"]:
        self._by_name[job_cls.job_name()] = job_cls
        return job_cls

    def get(self, name: str) -> Optional[Type["ReconciliationJob"]]:
        return self._by_name.get((name or "").strip().lower())

    def all(self) -> Dict[str, Type["ReconciliationJob"]]:
        return dict(self._by_name)


registry = JobRegistry()


class ReconciliationJob(abc.ABC):
    """Base class for reconciliation jobs."""

    _NAME = ""
    description = ""
    collections: Tuple[CollectionSpec, ...] = ()
    read_only = False

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        self.options: Dict[str, Any] = dict(options or {})

    @classmethod
    def job_name(cls) -> str:
        return cls._NAME or cls.__name__.lower()

    @classmethod
    def describe(cls) -> Dict[str, Any]:
        return {
            "name": cls.job_name(),
            "description": cls.description,
            "read_only": cls.read_only,
            "collections": [spec.collection for spec in cls.collections],
        }

    @abc.abstractmethod
    def plan(self, snapshot: Mapping[str, List[Dict[str, Any]]]) -> JobPlan:
        ...


def list_jobs() -> List[Dict[str, Any]]:
    return [job_cls.describe() for _, job_cls in sorted(registry.all().items())]


# =============================================================================
# Skills
# =============================================================================

def _assignment_key(assignment: MachineSkill) -> Optional[str]:
    if not assignment.employee_id or not assignment.machine_id:
        return None
    return f"{assignment.employee_id}:{assignment.machine_id}"


@registry.register
class SkillsJob(ReconciliationJob):
    """Migrate legacy ``maquina_<n>`` slots into EmployeeMachineSkill.

    Options:
        deprecate_legacy: flag migrated slot fields as deprecated
        default_competency: competency for created assignments
        validate_machines: resolve references against the machine catalog
    """

    _NAME = "skills"
    description = "Migrate legacy machine slots into EmployeeMachineSkill"
    collections = (
        CollectionSpec(EMPLOYEES),
        CollectionSpec(SKILLS),
        CollectionSpec(MACHINES),
    )

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(options)
        self.comparisons: List[SkillComparison] = []

    def plan(self, snapshot: Mapping[str, List[Dict[str, Any]]]) -> JobPlan:
        deprecate = option_bool(self.options, "deprecate_legacy")
        default_competency = str(self.options.get("default_competency") or DEFAULT_COMPETENCY)

        employees = normalize_records(LegacyEmployee, snapshot.get(EMPLOYEES, []))
        assignments = normalize_records(MachineSkill, snapshot.get(SKILLS, []))
        machines = normalize_records(Machine, snapshot.get(MACHINES, []))

        result = JobPlan()
        stats = defaultdict(int)
        stats["employees_total"] = len(employees)
        stats["assignments_total"] = len(assignments)

        catalog: Optional[MachineCatalog] = None
        if option_bool(self.options, "validate_machines", True):
            if machines:
                catalog = MachineCatalog(machines)
            else:
                result.warnings.append(DataQualityWarning(
                    "empty_machine_catalog",
                    "Machine catalog is empty; machine references were not validated",
                ))

        survivors, groups = resolve_duplicates(assignments, _assignment_key)
        result.decisions.extend(duplicate_deletions(
            groups,
            SKILLS,
            lambda r: {"employee_id": r.employee_id, "machine_id": r.machine_id},
        ))
        stats["duplicate_assignments"] = sum(len(g.discard) for g in groups)

        by_employee: Dict[str, List[MachineSkill]] = defaultdict(list)
        for assignment in survivors:
            if assignment.employee_id:
                by_employee[assignment.employee_id].append(assignment)

        known = {e.id for e in employees if e.id}
        for employee_id in sorted(set(by_employee) - known):
            result.warnings.append(DataQualityWarning(
                "orphaned_assignment",
                f"Assignments reference unknown employee {employee_id}",
                {"employee_id": employee_id, "assignment_ids": [a.id for a in by_employee[employee_id]]},
            ))

        self.comparisons = []
        for employee in employees:
            if not employee.id:
                if employee.machine_slots:
                    result.warnings.append(DataQualityWarning(
                        "missing_record_id",
                        f"{employee.label} has machine slots but no record id; slots were not migrated",
                        {"employee_code": employee.employee_code, "slots": employee.machine_slots},
                    ))
                continue
            mine = by_employee.get(employee.id, [])

            for item in find_incomplete(mine):
                result.warnings.append(DataQualityWarning(
                    "incomplete_assignment",
                    f"Assignment of {employee.label} to {item.machine_id} lacks {', '.join(item.missing_fields)}",
                    {"employee_id": employee.id, **item.to_dict()},
                ))

            if not employee.machine_slots or employee.machine_slots_status == DEPRECATED:
                stats["employees_without_legacy"] += 1
                with with_correlation(employee_id=employee.id):
                    result.decisions.extend(reconcile_skills(
                        employee,
                        [],
                        mine,
                        compare_skills(employee.id, [], mine),
                        default_competency=default_competency,
                        legacy_retired=True,
                    ))
                continue

            with with_correlation(employee_id=employee.id):
                pairs = legacy_machine_pairs(employee)
                resolved, unresolved = resolve_machine_refs(pairs, catalog)
                comparison = compare_skills(employee.id, resolved, mine)
                self.comparisons.append(comparison)

                stats["employees_compared"] += 1
                stats["legacy_slots"] += len(pairs)
                stats["unresolved_machine_refs"] += len(unresolved)
                stats["coinciden" if comparison.coincide else "no_coinciden"] += 1

                for mismatch in comparison.order_mismatches:
                    result.warnings.append(DataQualityWarning(
                        "preference_order_mismatch",
                        f"{employee.label}: machine {mismatch['machine_id']} is ordered "
                        f"{mismatch['canonical_order']}, legacy slot is {mismatch['legacy_order']}",
                        {"employee_id": employee.id, **mismatch},
                    ))

                decisions = reconcile_skills(
                    employee,
                    resolved,
                    mine,
                    comparison,
                    unresolved=unresolved,
                    default_competency=default_competency,
                    deprecate_legacy=deprecate,
                )
                logger.debug(
                    f"{employee.label}: {', '.join(d.action.value for d in decisions)}",
                    extra_fields={"coincide": comparison.coincide},
                )
                result.decisions.extend(decisions)

        result.stats = dict(stats)
        return result


@registry.register
class SkillsVerifyJob(SkillsJob):
    """Read-only skills diagnosis: what the skills job would do, and why."""

    _NAME = "skills-verify"
    description = "Compare legacy machine slots with EmployeeMachineSkill without writing"
    read_only = True

    def plan(self, snapshot: Mapping[str, List[Dict[str, Any]]]) -> JobPlan:
        result = super().plan(snapshot)
        result.stats["mismatches"] = [
            comparison.to_dict()
            for comparison in self.comparisons
            if not comparison.coincide or comparison.order_mismatches or comparison.incomplete
        ]
        return result


# =============================================================================
# Machines
# =============================================================================

def _by_display_order(machines: List[Tuple[LegacyMachine, Mapping[str, Any]]]):
    return sorted(machines, key=lambda item: (item[0].order is None, item[0].order or 0))


def _process_entry(process: Process) -> Dict[str, Any]:
    return {
        "process_id": process.id,
        "nombre_proceso": process.name,
        "codigo_proceso": process.code,
        "operadores_requeridos": process.required_operators or DEFAULT_PROCESS_OPERATORS,
        "activo": process.active is not False,
    }


def configured_processes(
    machine: LegacyMachine,
    links: List[MachineProcess],
    processes: Mapping[str, Process],
) -> List[Dict[str, Any]]:
    """Processes of a legacy machine in the master's ``procesos_configurados`` shape.

    MachineProcess links come first, with their per-machine overrides. Ids in
    ``procesos_ids`` not already linked are appended after them. Unknown
    processes are dropped.
    """
    configured: List[Dict[str, Any]] = []
    for link in links:
        process = processes.get(link.process_id)
        if process is None:
            continue
        entry = _process_entry(process)
        entry["operadores_requeridos"] = link.required_operators or entry["operadores_requeridos"]
        entry["orden"] = link.order or 0
        entry["activo"] = link.active is not False
        configured.append(entry)

    present = {entry["process_id"] for entry in configured}
    for process_id in machine.process_ids:
        process = processes.get(process_id)
        if process is None or process_id in present:
            continue
        configured.append({**_process_entry(process), "orden": len(configured), "activo": True})
        present.add(process_id)
    return configured


@registry.register
class MachinesJob(ReconciliationJob):
    """Consolidate the legacy ``Machine`` collection into the machine master.

    Codes are unique case-insensitively: in display order the first machine
    keeps its code and every later one is renamed ``<code>_<n>``. Each legacy
    machine without a master record (matched by ``machine_id_legacy``, then
    by code) gets one, with its configured processes.
    """

    _NAME = "machines"
    description = "Migrate legacy Machine records into MachineMasterDatabase"
    collections = (
        CollectionSpec(LEGACY_MACHINES, sort="orden"),
        CollectionSpec(MACHINES, sort="codigo_maquina"),
        CollectionSpec(PROCESSES, sort="codigo"),
        CollectionSpec(MACHINE_PROCESSES),
    )

    def plan(self, snapshot: Mapping[str, List[Dict[str, Any]]]) -> JobPlan:
        now = datetime.utcnow().isoformat()
        raw_legacy = [r for r in snapshot.get(LEGACY_MACHINES, []) if isinstance(r, Mapping)]
        legacy = _by_display_order(list(zip(normalize_records(LegacyMachine, raw_legacy), raw_legacy)))
        masters = normalize_records(Machine, snapshot.get(MACHINES, []))
        processes = {p.id: p for p in normalize_records(Process, snapshot.get(PROCESSES, [])) if p.id}

        links: Dict[str, List[MachineProcess]] = defaultdict(list)
        for link in normalize_records(MachineProcess, snapshot.get(MACHINE_PROCESSES, [])):
            if link.machine_id:
                links[link.machine_id].append(link)

        master_by_legacy = {m.legacy_id: m for m in masters if m.legacy_id}
        master_by_code = {m.code.lower(): m for m in masters if m.code}

        result = JobPlan()
        stats = defaultdict(int)
        stats["legacy_total"] = len(legacy)
        stats["master_total"] = len(masters)

        codes = self._dedupe_codes([machine for machine, _ in legacy], result)
        stats["duplicate_codes"] = sum(1 for d in result.decisions if d.action == Action.UPDATE)

        for machine, raw in legacy:
            if not machine.id:
                result.warnings.append(DataQualityWarning(
                    "missing_record_id",
                    f"Legacy machine {machine.name or machine.code} has no record id; not migrated",
                    {"code": machine.code, "name": machine.name},
                ))
                continue

            code = codes.get(machine.id) or f"M{machine.id}"
            existing = master_by_legacy.get(machine.id) or master_by_code.get(code.lower())

            extras: Dict[str, Any] = {}
            if existing is None:
                procesos = configured_processes(machine, links.get(machine.id, []), processes)
                stats["processes_integrated"] += len(procesos)
                extras = {
                    **{name: raw.get(name) for name in MACHINE_COPIED_FIELDS},
                    **{name: raw.get(source) or [] for name, source in MACHINE_LIST_FIELDS.items()},
                    **MACHINE_MASTER_DEFAULTS,
                    "orden_visualizacion": machine.order,
                    "procesos_configurados": procesos,
                    "notas": raw.get("descripcion") or "",
                    "ultimo_sincronizado": now,
                }
                master_by_code[code.lower()] = Machine(code=code, legacy_id=machine.id)

            decision = reconcile_single_valued(
                Machine,
                MACHINES,
                code,
                {"code": code, "name": machine.name, "legacy_id": machine.id},
                existing,
                compared_fields=[],
                create_extras=extras,
                context={"legacy_machine_id": machine.id, "name": machine.name},
            )
            stats["migrated" if decision.action == Action.CREATE else "already_migrated"] += 1
            result.decisions.append(decision)

        result.stats = dict(stats)
        return result

    def _dedupe_codes(self, machines: List[LegacyMachine], result: JobPlan) -> Dict[str, str]:
        """Effective code per legacy machine id; renames are planned as UPDATEs."""
        taken = {m.code.lower() for m in machines if m.code}
        seen: Dict[str, int] = defaultdict(int)
        codes: Dict[str, str] = {}

        for machine in machines:
            if not machine.id or not machine.code:
                continue
            lower = machine.code.lower()
            n = seen[lower]
            seen[lower] += 1
            if n == 0:
                codes[machine.id] = machine.code
                continue

            new_code = f"{machine.code}_{n}"
            while new_code.lower() in taken:
                n += 1
                new_code = f"{machine.code}_{n}"
            taken.add(new_code.lower())
            codes[machine.id] = new_code

            logger.info(f"Duplicate machine code {machine.code} renamed to {new_code}")
            result.decisions.append(reconcile_single_valued(
                LegacyMachine,
                LEGACY_MACHINES,
                machine.id,
                {"code": new_code},
                machine,
                context={"previous_code": machine.code, "name": machine.name},
            ))
        return codes


REFERENCE_COLLECTIONS = (MAINTENANCE, MACHINE_ASSIGNMENTS, MACHINE_PLANNING, MACHINE_STATUS)


@registry.register
class MachineReferencesJob(ReconciliationJob):
    """Point every ``machine_id`` reference at a machine master record.

    A reference that is not a master id is rewritten through
    ``machine_id_legacy`` or, failing that, through the code of the legacy
    machine it names.

    Options:
        remove_orphans: delete MachineAssignment records whose machine
            cannot be resolved (default true); unresolved references in
            other collections are only reported
    """

    _NAME = "machine-references"
    description = "Rewrite legacy machine ids in maintenance, assignments, planning and status"
    collections = (
        CollectionSpec(MACHINES),
        CollectionSpec(LEGACY_MACHINES),
        *(CollectionSpec(collection) for collection in REFERENCE_COLLECTIONS),
    )

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(options)
        self.unresolved: Dict[str, List[Dict[str, Any]]] = {}

    def plan(self, snapshot: Mapping[str, List[Dict[str, Any]]]) -> JobPlan:
        masters = normalize_records(Machine, snapshot.get(MACHINES, []))
        legacy = normalize_records(LegacyMachine, snapshot.get(LEGACY_MACHINES, []))
        catalog = MachineCatalog(masters, legacy)
        remove_orphans = option_bool(self.options, "remove_orphans", True)

        result = JobPlan()
        stats = defaultdict(int)
        stats["legacy_total"] = len(legacy)
        stats["master_total"] = len(catalog)

        for collection in REFERENCE_COLLECTIONS:
            with with_correlation(collection=collection):
                for record in normalize_records(MachineReference, snapshot.get(collection, [])):
                    if not record.id or not record.machine_id:
                        continue
                    stats["references_total"] += 1
                    if record.machine_id in catalog:
                        continue

                    stats["broken_before"] += 1
                    target = catalog.resolve(record.machine_id)
                    if target:
                        result.decisions.append(reconcile_single_valued(
                            MachineReference,
                            collection,
                            record.id,
                            {"machine_id": target},
                            record,
                            context={"previous_machine_id": record.machine_id},
                        ))
                        continue

                    if collection == MACHINE_ASSIGNMENTS and remove_orphans:
                        result.decisions.append(Decision(
                            action=Action.DELETE,
                            collection=collection,
                            key=record.id,
                            record_id=record.id,
                            reason="orphaned_reference",
                            context={"machine_id": record.machine_id},
                            group=record.id,
                        ))
                        continue

                    self.unresolved.setdefault(collection, []).append(
                        {"record_id": record.id, "machine_id": record.machine_id}
                    )

        for collection, records in self.unresolved.items():
            result.warnings.append(DataQualityWarning(
                "unresolved_machine_reference",
                f"{len(records)} {collection} records reference unknown machines",
                {"collection": collection, "records": records},
            ))

        stats["broken_remaining"] = sum(len(records) for records in self.unresolved.values())
        result.stats = dict(stats)
        return result


@registry.register
class MachinesVerifyJob(MachineReferencesJob):
    """Read-only integrity check of the machine consolidation."""

    _NAME = "machines-verify"
    description = "Count machine references that do not point at a master record, without writing"
    read_only = True

    def plan(self, snapshot: Mapping[str, List[Dict[str, Any]]]) -> JobPlan:
        result = super().plan(snapshot)
        catalog = MachineCatalog(normalize_records(Machine, snapshot.get(MACHINES, [])))
        result.stats["legacy_without_master"] = sorted(
            m.id for m in normalize_records(LegacyMachine, snapshot.get(LEGACY_MACHINES, []))
            if m.id and catalog.by_legacy_id(m.id) is None and catalog.by_code(m.code) is None
        )
        return result


# =============================================================================
# Lockers
# =============================================================================

@registry.register
class LockersJob(ReconciliationJob):
    """Sync locker assignments from the employee master's locker fields.

    Locker rooms referenced by an employee but not configured are created
    with their known capacity. Duplicate assignments of one employee are
    resolved before syncing.
    """

    _NAME = "lockers"
    description = "Sync LockerAssignment from the employee master locker fields"
    collections = (
        CollectionSpec(EMPLOYEES),
        CollectionSpec(LOCKERS),
        CollectionSpec(LOCKER_ROOMS),
    )

    def plan(self, snapshot: Mapping[str, List[Dict[str, Any]]]) -> JobPlan:
        now = datetime.utcnow().isoformat()
        employees = normalize_records(LegacyEmployee, snapshot.get(EMPLOYEES, []))
        lockers = normalize_records(LockerAssignment, snapshot.get(LOCKERS, []))
        rooms = normalize_records(LockerRoom, snapshot.get(LOCKER_ROOMS, []))

        result = JobPlan()

        lockers, locker_groups = resolve_duplicates(lockers, lambda r: r.employee_id)
        result.decisions.extend(duplicate_deletions(
            locker_groups, LOCKERS, lambda r: {"employee_id": r.employee_id},
        ))
        rooms, room_groups = resolve_duplicates(rooms, lambda r: r.name)
        result.decisions.extend(duplicate_deletions(
            room_groups, LOCKER_ROOMS, lambda r: {"locker_room": r.name},
        ))

        lockers_by_employee = {l.employee_id: l for l in lockers if l.employee_id}
        room_names = {r.name for r in rooms if r.name}

        with_data = [e for e in employees if e.locker_room and e.locker_number]
        for employee in with_data:
            if not employee.employee_id:
                result.warnings.append(DataQualityWarning(
                    "missing_employee_id",
                    f"{employee.label} has locker data but no employee_id",
                    {"record_id": employee.id, "employee": employee.label},
                ))

        sources, employee_groups = resolve_duplicates(
            [e for e in with_data if e.employee_id], lambda e: e.employee_id,
        )
        for group in employee_groups:
            result.warnings.append(DataQualityWarning(
                "duplicate_employee_id",
                f"{len(group.discard) + 1} master records share employee_id {group.key}; newest used",
                {"employee_id": group.key, "used_record_id": group.keep.id,
                 "ignored_record_ids": [r.id for r in group.discard]},
            ))

        for employee in sources:
            room = employee.locker_room
            if room not in room_names:
                room_names.add(room)
                result.decisions.append(reconcile_single_valued(
                    LockerRoom,
                    LOCKER_ROOMS,
                    room,
                    {"name": room, "capacity": locker_room_capacity(room)},
                    None,
                    create_extras={
                        "identificadores_taquillas": [],
                        "notas": "Creado automáticamente durante migración de datos",
                    },
                    context={"locker_room": room},
                ))

            result.decisions.append(reconcile_single_valued(
                LockerAssignment,
                LOCKERS,
                employee.employee_id,
                {
                    "employee_id": employee.employee_id,
                    "locker_room": room,
                    "locker_number": employee.locker_number,
                },
                lockers_by_employee.get(employee.employee_id),
                compared_fields=["locker_room", "locker_number"],
                create_extras={
                    "requiere_taquilla": True,
                    "numero_taquilla_nuevo": "",
                    "fecha_asignacion": now,
                    "notificacion_enviada": False,
                    "historial_cambios": [],
                },
                update_extras={"fecha_asignacion": now},
                context={"employee": employee.label},
            ))

        result.stats = {
            "employees_total": len(employees),
            "employees_with_locker_data": len(with_data),
            "lockers_existing": len(lockers),
            "locker_rooms_existing": len(rooms),
        }
        return result


# =============================================================================
# Departments
# =============================================================================

@registry.register
class DepartmentsJob(ReconciliationJob):
    """Keep department names consistent across positions and employees.

    Options:
        changes: renames to propagate to employees, each
            ``{"type": "department_name_change" | "position_name_change",
            "old_name", "new_name", "department_name"}``
        create_missing: create departments employees reference but that do
            not exist (default true)
    """

    _NAME = "departments"
    description = "Sync department names to positions and employees"
    collections = (
        CollectionSpec(DEPARTMENTS),
        CollectionSpec(POSITIONS),
        CollectionSpec(EMPLOYEES),
    )

    def plan(self, snapshot: Mapping[str, List[Dict[str, Any]]]) -> JobPlan:
        departments = normalize_records(Department, snapshot.get(DEPARTMENTS, []))
        positions = normalize_records(Position, snapshot.get(POSITIONS, []))
        employees = normalize_records(LegacyEmployee, snapshot.get(EMPLOYEES, []))

        result = JobPlan()
        by_id = {d.id: d for d in departments if d.id}

        for position in positions:
            if not position.id:
                continue
            department = by_id.get(position.department_id)
            if department is None or not department.name:
                if position.department_id:
                    result.warnings.append(DataQualityWarning(
                        "orphaned_position",
                        f"Position {position.name} references unknown department {position.department_id}",
                        {"position_id": position.id, "department_id": position.department_id},
                    ))
                continue
            result.decisions.append(reconcile_single_valued(
                Position,
                POSITIONS,
                position.id,
                {"department_name": normalize_name(department.name)},
                position,
                context={"position": position.name},
            ))

        effective: Dict[str, str] = {
            e.id: normalize_name(e.department) for e in employees if e.id
        }
        for change in self.options.get("changes") or []:
            result.decisions.extend(self._propagate(change, employees, effective, result))

        created = 0
        if option_bool(self.options, "create_missing", True):
            known = {normalize_name(d.name) for d in departments if d.name}
            headcount: Dict[str, int] = defaultdict(int)
            for name in effective.values():
                if name and name not in known:
                    headcount[name] += 1
            for name in sorted(headcount):
                result.decisions.append(reconcile_single_valued(
                    Department,
                    DEPARTMENTS,
                    name,
                    {"name": name, "code": name[:3]},
                    None,
                    create_extras={"color": DEFAULT_DEPARTMENT_COLOR},
                    context={"employees": headcount[name]},
                ))
                created += 1

        result.stats = {
            "departments_total": len(departments),
            "positions_total": len(positions),
            "employees_total": len(employees),
            "departments_missing": created,
        }
        return result

    def _propagate(
        self,
        change: Any,
        employees: List[LegacyEmployee],
        effective: Dict[str, str],
        result: JobPlan,
    ) -> List[Decision]:
        if not isinstance(change, Mapping):
            result.warnings.append(DataQualityWarning("invalid_change", "Change is not an object", {"change": change}))
            return []

        kind = change.get("type") or "department_name_change"
        old = normalize_name(change.get("old_name"))
        new = normalize_name(change.get("new_name"))
        if not old or not new or kind not in ("department_name_change", "position_name_change"):
            result.warnings.append(DataQualityWarning("invalid_change", f"Ignored change {kind}", {"change": dict(change)}))
            return []

        decisions = []
        scope = normalize_name(change.get("department_name"))
        for employee in employees:
            if not employee.id:
                continue
            if kind == "department_name_change" and normalize_name(employee.department) == old:
                effective[employee.id] = new
                decisions.append(reconcile_single_valued(
                    LegacyEmployee, EMPLOYEES, employee.id, {"department": new}, employee,
                    context={"employee": employee.label},
                ))
            elif (
                kind == "position_name_change"
                and normalize_name(employee.department) == scope
                and normalize_name(employee.position) == old
            ):
                decisions.append(reconcile_single_valued(
                    LegacyEmployee, EMPLOYEES, employee.id, {"position": new}, employee,
                    context={"employee": employee.label},
                ))
        return decisions


# =============================================================================
# Roles
# =============================================================================

@registry.register
class RolesJob(ReconciliationJob):
    """Remove duplicate role codes and seed the default roles.

    Options:
        seed_defaults: create missing default roles (default true)
        reset_defaults: also restore name, level and permissions of
            existing default roles
    """

    _NAME = "roles"
    description = "Resolve duplicate role codes and seed default roles"
    collections = (CollectionSpec(ROLES),)

    def plan(self, snapshot: Mapping[str, List[Dict[str, Any]]]) -> JobPlan:
        roles = normalize_records(Role, snapshot.get(ROLES, []))
        result = JobPlan()

        survivors, groups = resolve_duplicates(roles, lambda r: normalize_name(r.code))
        result.decisions.extend(duplicate_deletions(
            groups, ROLES, lambda r: {"code": r.code, "name": r.name},
        ))
        by_code = {normalize_name(r.code): r for r in survivors if r.code}

        if option_bool(self.options, "seed_defaults", True):
            reset = option_bool(self.options, "reset_defaults")
            for role in DEFAULT_ROLES:
                extras = {k: v for k, v in role.items() if k not in ("code", "name", "level")}
                result.decisions.append(reconcile_single_valued(
                    Role,
                    ROLES,
                    role["code"],
                    {"code": role["code"], "name": role["name"], "level": role["level"]},
                    by_code.get(role["code"]),
                    compared_fields=["name", "level"] if reset else [],
                    create_extras=extras,
                    update_extras=extras if reset else None,
                    context={"name": role["name"]},
                ))

        result.stats = {
            "roles_total": len(roles),
            "duplicate_codes": len(groups),
        }
        return result


# =============================================================================
# Run Driver
# =============================================================================

def new_run_id() -> str:
    return f"run-{uuid.uuid4().hex[:12]}"


async def run_job(
    store: EntityStore,
    job: str,
    dry_run: bool = False,
    options: Optional[Mapping[str, Any]] = None,
    write_delay: float = 0.1,
    page_size: Optional[int] = None,
    audit: Optional[AuditLogger] = None,
    run_id: Optional[str] = None,
    actor: str = "system",
    concurrent_reads: bool = True,
) -> ReconciliationReport:
    """Run one reconciliation job end to end.

    Args:
        store: Remote entity store
        job: Registered job name
        dry_run: Plan only; the report lists the planned writes
        options: Job-specific options
        write_delay: Minimum seconds between consecutive writes
        page_size: Read page size
        audit: Audit logger for run boundaries and writes
        run_id: Run identifier (generated when omitted)
        actor: Who triggered the run (audit)
        concurrent_reads: Read the job's collections concurrently

    Returns:
        ReconciliationReport

    Raises:
        UnknownJobError: ``job`` is not registered
        TransportError: a read failed; nothing was written
    """
    job_cls = registry.get(job)
    if job_cls is None:
        raise UnknownJobError(f"Unknown reconciliation job: {job}")

    instance = job_cls(options)
    name = job_cls.job_name()
    run_id = run_id or new_run_id()
    dry_run = dry_run or job_cls.read_only
    started_at = datetime.utcnow()

    with with_correlation(run_id=run_id, job=name, actor=actor):
        logger.info(f"Starting {name} run (dry_run={dry_run})")
        if audit:
            audit.log_info(
                AuditEventType.RUN_STARTED,
                f"{name} run started",
                run_id=run_id,
                job=name,
                details={"dry_run": dry_run, "options": dict(options or {})},
                actor=actor,
            )

        try:
            snapshot = await read_collections(
                store, job_cls.collections, page_size=page_size, concurrent=concurrent_reads,
            )
            plan = instance.plan(snapshot)

            for decision in plan.decisions:
                if decision.action == Action.FLAG_CONFLICT:
                    logger.warning(f"Conflict {decision.reason} for {decision.key}")
                    if audit:
                        audit.log_warning(
                            AuditEventType.CONFLICT_FLAGGED,
                            f"{decision.reason}: {decision.key}",
                            run_id=run_id,
                            job=name,
                            collection=decision.collection,
                            record_id=decision.record_id,
                            details=decision.to_dict(),
                            actor=actor,
                        )

            executor = MigrationExecutor(
                store,
                write_delay=write_delay,
                audit=audit,
                dry_run=dry_run,
                run_id=run_id,
                job=name,
            )
            execution = await executor.execute(plan.decisions)
        except Exception as e:
            logger.error(f"{name} run failed: {e}", exc_info=True)
            if audit:
                audit.log_error(
                    AuditEventType.RUN_FAILED,
                    f"{name} run failed: {e}",
                    run_id=run_id,
                    job=name,
                    details={"error_type": type(e).__name__},
                    actor=actor,
                )
            raise

        report = build_report(
            run_id=run_id,
            job=name,
            started_at=started_at,
            decisions=plan.decisions,
            execution=execution,
            warnings=plan.warnings,
            stats=plan.stats,
            dry_run=dry_run,
        )

        logger.info(
            f"Finished {name} run",
            extra_fields={"counts": report.counts, "warnings": len(report.warnings)},
        )
        if audit:
            audit.log_info(
                AuditEventType.RUN_COMPLETED,
                f"{name} run completed",
                run_id=run_id,
                job=name,
                details={"counts": report.counts, "dry_run": dry_run},
                actor=actor,
            )
        return report
