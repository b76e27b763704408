"""Comparison of legacy machine slots against canonical skill assignments."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from core.models.canonical import MachineSkill
from reconciliation.normalize import SkillPair


@dataclass
class IncompleteAssignment:
    """Canonical assignment missing competency and/or preference order."""
    assignment_id: str
    machine_id: str
    missing_fields: List[str]

    def to_dict(self) -> Dict:
        return {
            "assignment_id": self.assignment_id,
            "machine_id": self.machine_id,
            "missing_fields": self.missing_fields,
        }


@dataclass
class SkillComparison:
    """Verdict for one employee.

    ``coincide`` only looks at machine membership. Preference order
    differences and incomplete assignments are reported but never make the
    two sets unequal.
    """
    employee_id: str
    coincide: bool
    legacy_machines: List[str] = field(default_factory=list)
    canonical_machines: List[str] = field(default_factory=list)
    missing_in_canonical: List[str] = field(default_factory=list)
    extra_in_canonical: List[str] = field(default_factory=list)
    order_mismatches: List[Dict] = field(default_factory=list)
    incomplete: List[IncompleteAssignment] = field(default_factory=list)

    @property
    def has_quality_issues(self) -> bool:
        return bool(self.incomplete)

    def to_dict(self) -> Dict:
        return {
            "employee_id": self.employee_id,
            "coincide": self.coincide,
            "legacy_machines": self.legacy_machines,
            "canonical_machines": self.canonical_machines,
            "missing_in_canonical": self.missing_in_canonical,
            "extra_in_canonical": self.extra_in_canonical,
            "order_mismatches": self.order_mismatches,
            "incomplete": [item.to_dict() for item in self.incomplete],
        }


def find_incomplete(assignments: Iterable[MachineSkill]) -> List[IncompleteAssignment]:
    """Flag every assignment whose competency or preference order is absent."""
    flagged = []
    for assignment in assignments:
        missing = assignment.missing_fields
        if missing:
            flagged.append(IncompleteAssignment(
                assignment_id=assignment.id or "",
                machine_id=assignment.machine_id or "",
                missing_fields=missing,
            ))
    flagged.sort(key=lambda item: (item.machine_id, item.assignment_id))
    return flagged


def compare_skills(
    employee_id: str,
    legacy_pairs: Iterable[SkillPair],
    assignments: Iterable[MachineSkill],
) -> SkillComparison:
    """Compare one employee's legacy pairs with its canonical assignments.

    Both sides are reduced to their unique machine ids and sorted before
    comparing, so the verdict does not depend on input order or on repeated
    entries.
    """
    legacy_pairs = list(legacy_pairs)
    assignments = [a for a in assignments if a.machine_id]

    legacy_machines = sorted({pair.machine_id for pair in legacy_pairs})
    canonical_machines = sorted({a.machine_id for a in assignments})

    legacy_set = set(legacy_machines)
    canonical_set = set(canonical_machines)

    # Lowest slot wins when a machine appears in several slots
    legacy_order: Dict[str, int] = {}
    for pair in legacy_pairs:
        current = legacy_order.get(pair.machine_id)
        if current is None or pair.preference_order < current:
            legacy_order[pair.machine_id] = pair.preference_order

    order_mismatches = []
    for assignment in sorted(assignments, key=lambda a: (a.machine_id, a.id or "")):
        expected = legacy_order.get(assignment.machine_id)
        if expected is None or assignment.preference_order is None:
            continue
        if assignment.preference_order != expected:
            order_mismatches.append({
                "machine_id": assignment.machine_id,
                "legacy_order": expected,
                "canonical_order": assignment.preference_order,
            })

    return SkillComparison(
        employee_id=employee_id,
        coincide=legacy_machines == canonical_machines,
        legacy_machines=legacy_machines,
        canonical_machines=canonical_machines,
        missing_in_canonical=sorted(legacy_set - canonical_set),
        extra_in_canonical=sorted(canonical_set - legacy_set),
        order_mismatches=order_mismatches,
        incomplete=find_incomplete(assignments),
    )
