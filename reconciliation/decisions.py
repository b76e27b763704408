"""Reconciliation decisions.

Turns comparison results into an explicit, ordered list of decisions. Nothing
in this module performs I/O; ``reconciliation.executor`` applies the
decisions that write.

Policies:
- Skill assignments: CREATE missing, UPDATE incomplete, FLAG_CONFLICT
  anything the legacy side does not explain, NO_ACTION otherwise.
- Single-valued targets (lockers, locker rooms, department names, default
  roles): CREATE when the key has no record, UPDATE when any compared field
  differs by exact equality, SKIP when all match.
- Duplicates sharing a natural key: the most recently created record
  survives, every other one is deleted. A key with one record is untouched.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from core.models.canonical import StoreRecord, LegacyEmployee, MachineSkill
from reconciliation.compare import SkillComparison
from reconciliation.normalize import (
    EMPLOYEES,
    SKILLS,
    SkillPair,
    to_wire,
)


DEFAULT_COMPETENCY = "Intermedio"
DEPRECATED = "deprecated"

T = TypeVar("T", bound=StoreRecord)


class Action(str, Enum):
    NO_ACTION = "NO_ACTION"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    SKIP = "SKIP"
    FLAG_CONFLICT = "FLAG_CONFLICT"
    DELETE = "DELETE"
    DEPRECATE = "DEPRECATE"


WRITE_ACTIONS = frozenset({Action.CREATE, Action.UPDATE, Action.DELETE, Action.DEPRECATE})


@dataclass
class Decision:
    """One planned outcome for one record or key.

    Attributes:
        action: What to do
        collection: Remote collection the decision targets
        key: Natural key (employee id, locker room name, role code, ...)
        record_id: Storage id of the target record (UPDATE/DELETE/DEPRECATE)
        fields: Wire-named payload for CREATE/UPDATE/DEPRECATE
        changes: Literal diff, ``{field: {"from": old, "to": new}}``
        reason: Machine-readable reason (conflicts, skips, deletions)
        context: Identifying fields for operators (names, codes, slots)
        group: Decisions sharing a group belong to the same source record
        requires_group_success: Skip this write if an earlier write of the
            same group failed
    """
    action: Action
    collection: str
    key: str
    record_id: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    changes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    reason: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    group: Optional[str] = None
    requires_group_success: bool = False

    @property
    def is_write(self) -> bool:
        return self.action in WRITE_ACTIONS

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "action": self.action.value,
            "collection": self.collection,
            "key": self.key,
        }
        if self.record_id:
            data["record_id"] = self.record_id
        if self.changes:
            data["changes"] = self.changes
        if self.reason:
            data["reason"] = self.reason
        data.update(self.context)
        return data


def _diff(fields: Mapping[str, Any], previous: Optional[Mapping[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
    previous = previous or {}
    return {name: {"from": previous.get(name), "to": value} for name, value in fields.items()}


# =============================================================================
# Skill Assignments
# =============================================================================

def _employee_context(employee: LegacyEmployee) -> Dict[str, Any]:
    context = {"employee": employee.label}
    if employee.employee_code:
        context["employee_code"] = employee.employee_code
    return context


def reconcile_skills(
    employee: LegacyEmployee,
    pairs: Sequence[SkillPair],
    assignments: Sequence[MachineSkill],
    comparison: SkillComparison,
    unresolved: Sequence[SkillPair] = (),
    default_competency: str = DEFAULT_COMPETENCY,
    deprecate_legacy: bool = False,
    legacy_retired: bool = False,
) -> List[Decision]:
    """Decide what to do with one employee's skill assignments.

    Args:
        employee: Legacy record (identity and lifecycle flag)
        pairs: Legacy pairs resolved against the machine catalog
        assignments: Canonical assignments of the employee (deduplicated)
        comparison: Comparator verdict for ``pairs`` vs ``assignments``
        unresolved: Legacy pairs whose machine is not in the catalog
        default_competency: Competency written when none is known
        deprecate_legacy: Flag the slot fields as deprecated once every
            slot is represented and nothing conflicts
        legacy_retired: The employee has no legacy slots, or they are
            deprecated. Canonical assignments are then authoritative: only
            incomplete ones are completed, nothing is flagged

    Returns:
        Decisions in a stable order; a single NO_ACTION when nothing applies
    """
    employee_id = comparison.employee_id
    context = _employee_context(employee)
    decisions: List[Decision] = []

    by_machine: Dict[str, MachineSkill] = {}
    for assignment in sorted(assignments, key=lambda a: (a.machine_id or "", a.id or "")):
        if assignment.machine_id:
            by_machine.setdefault(assignment.machine_id, assignment)

    seen = set()
    for pair in sorted(pairs, key=lambda p: p.preference_order):
        if pair.machine_id in seen:
            continue
        seen.add(pair.machine_id)
        key = f"{employee_id}:{pair.machine_id}"
        existing = by_machine.get(pair.machine_id)

        if existing is None:
            values = {
                "employee_id": employee_id,
                "machine_id": pair.machine_id,
                "preference_order": pair.preference_order,
                "competency_level": default_competency,
            }
            decisions.append(Decision(
                action=Action.CREATE,
                collection=SKILLS,
                key=key,
                fields=to_wire(MachineSkill, values),
                changes=_diff(to_wire(MachineSkill, values)),
                context={**context, "slot": pair.preference_order},
                group=employee_id,
            ))
            continue

        if existing.missing_fields:
            values: Dict[str, Any] = {}
            if existing.preference_order is None:
                values["preference_order"] = pair.preference_order
            if existing.competency_level is None:
                values["competency_level"] = default_competency
            wire = to_wire(MachineSkill, values)
            decisions.append(Decision(
                action=Action.UPDATE,
                collection=SKILLS,
                key=key,
                record_id=existing.id,
                fields=wire,
                changes=_diff(wire),
                reason="incomplete_assignment",
                context={**context, "slot": pair.preference_order},
                group=employee_id,
            ))

    if legacy_retired:
        decisions.extend(_complete_assignments(employee_id, by_machine, context, default_competency))

    conflicts = 0
    for machine_id in ([] if legacy_retired else comparison.extra_in_canonical):
        assignment = by_machine.get(machine_id)
        decisions.append(Decision(
            action=Action.FLAG_CONFLICT,
            collection=SKILLS,
            key=f"{employee_id}:{machine_id}",
            record_id=assignment.id if assignment else None,
            reason="assignment_not_in_legacy",
            context={**context, "machine_id": machine_id},
            group=employee_id,
        ))
        conflicts += 1

    for pair in unresolved:
        decisions.append(Decision(
            action=Action.FLAG_CONFLICT,
            collection=SKILLS,
            key=f"{employee_id}:{pair.machine_id}",
            reason="machine_not_found",
            context={**context, "slot": pair.preference_order, "machine_ref": pair.machine_id},
            group=employee_id,
        ))
        conflicts += 1

    if (
        deprecate_legacy
        and employee.id
        and employee.machine_slots
        and conflicts == 0
        and employee.machine_slots_status != DEPRECATED
    ):
        wire = {"machine_slots_status": DEPRECATED}
        decisions.append(Decision(
            action=Action.DEPRECATE,
            collection=EMPLOYEES,
            key=employee_id,
            record_id=employee.id,
            fields=wire,
            changes=_diff(wire, {"machine_slots_status": employee.machine_slots_status}),
            reason="slots_migrated",
            context=context,
            group=employee_id,
            requires_group_success=True,
        ))

    if not decisions:
        decisions.append(Decision(
            action=Action.NO_ACTION,
            collection=SKILLS,
            key=employee_id,
            context=context,
            group=employee_id,
        ))

    return decisions


def _complete_assignments(
    employee_id: str,
    by_machine: Mapping[str, MachineSkill],
    context: Dict[str, Any],
    default_competency: str,
) -> List[Decision]:
    """Fill missing order and competency when no legacy slot can supply them.

    A missing preference order becomes the next order after the highest
    one the employee already uses.
    """
    next_order = max(
        (a.preference_order for a in by_machine.values() if a.preference_order is not None),
        default=0,
    ) + 1

    decisions = []
    for machine_id, existing in sorted(by_machine.items()):
        if not existing.missing_fields:
            continue
        values: Dict[str, Any] = {}
        if existing.preference_order is None:
            values["preference_order"] = next_order
            next_order += 1
        if existing.competency_level is None:
            values["competency_level"] = default_competency
        wire = to_wire(MachineSkill, values)
        decisions.append(Decision(
            action=Action.UPDATE,
            collection=SKILLS,
            key=f"{employee_id}:{machine_id}",
            record_id=existing.id,
            fields=wire,
            changes=_diff(wire),
            reason="incomplete_assignment",
            context={**context, "machine_id": machine_id},
            group=employee_id,
        ))
    return decisions



# =============================================================================
# Single-Valued Sync
# =============================================================================

def reconcile_single_valued(
    model: Type[StoreRecord],
    collection: str,
    key: str,
    source: Mapping[str, Any],
    existing: Optional[StoreRecord],
    compared_fields: Optional[Sequence[str]] = None,
    create_extras: Optional[Mapping[str, Any]] = None,
    update_extras: Optional[Mapping[str, Any]] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> Decision:
    """Tri-state CREATE / UPDATE / SKIP for one keyed target record.

    Args:
        model: Canonical model of the target collection
        collection: Target collection
        key: Natural key of the target
        source: Canonical field -> value the target must hold
        existing: Current target record for ``key``, if any
        compared_fields: Fields compared by exact equality (default: all of
            ``source``); an empty list makes any existing record a SKIP
        create_extras: Wire-named fields added to a CREATE payload only
        update_extras: Wire-named fields added to an UPDATE payload only
        context: Identifying fields for operators

    Returns:
        A single decision
    """
    compared = list(source.keys()) if compared_fields is None else list(compared_fields)
    context = dict(context or {})

    if existing is None:
        wire = to_wire(model, source)
        fields = {**wire, **(create_extras or {})}
        return Decision(
            action=Action.CREATE,
            collection=collection,
            key=key,
            fields=fields,
            changes=_diff(wire),
            context=context,
            group=key,
        )

    changed = {
        name: source.get(name)
        for name in compared
        if getattr(existing, name, None) != source.get(name)
    }
    if not changed:
        return Decision(
            action=Action.SKIP,
            collection=collection,
            key=key,
            record_id=existing.id,
            reason="fields_match",
            context=context,
            group=key,
        )

    wire = to_wire(model, changed)
    previous = to_wire(model, {name: getattr(existing, name, None) for name in changed})
    return Decision(
        action=Action.UPDATE,
        collection=collection,
        key=key,
        record_id=existing.id,
        fields={**wire, **(update_extras or {})},
        changes=_diff(wire, previous),
        context=context,
        group=key,
    )


# =============================================================================
# Duplicate Resolution
# =============================================================================

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class DuplicateGroup:
    """Records sharing a natural key: one survivor, the rest to delete."""
    key: str
    keep: StoreRecord
    discard: List[StoreRecord]


def _recency(record: StoreRecord) -> Tuple[datetime, str]:
    # Missing timestamps sort oldest; equal timestamps fall back to the id
    return (record.created_date or _EPOCH, record.id or "")


def resolve_duplicates(
    records: Iterable[T],
    key_fn: Callable[[T], Optional[str]],
) -> Tuple[List[T], List[DuplicateGroup]]:
    """Group records by natural key and keep the newest of each group.

    Records whose key is empty are never grouped and always survive.

    Returns:
        (survivors in input order, groups that had more than one record)
    """
    records = list(records)
    by_key: Dict[str, List[T]] = {}
    for record in records:
        key = key_fn(record)
        if key:
            by_key.setdefault(key, []).append(record)

    groups: List[DuplicateGroup] = []
    discarded = set()
    for key, members in by_key.items():
        if len(members) < 2:
            continue
        keep = max(members, key=_recency)
        discard = [m for m in members if m is not keep]
        groups.append(DuplicateGroup(key=key, keep=keep, discard=discard))
        discarded.update(id(m) for m in discard)

    survivors = [r for r in records if id(r) not in discarded]
    return survivors, groups


def duplicate_deletions(
    groups: Iterable[DuplicateGroup],
    collection: str,
    context_fn: Optional[Callable[[StoreRecord], Mapping[str, Any]]] = None,
) -> List[Decision]:
    """DELETE decisions for every discarded duplicate."""
    decisions = []
    for group in groups:
        for record in group.discard:
            context = dict(context_fn(record)) if context_fn else {}
            context["kept_record_id"] = group.keep.id
            decisions.append(Decision(
                action=Action.DELETE,
                collection=collection,
                key=group.key,
                record_id=record.id,
                changes={"record": {"from": record.id, "to": None}},
                reason="duplicate_key",
                context=context,
                group=group.key,
            ))
    return decisions
