"""Tests for the comparator and the reconciler's decisions."""

import random

import pytest

from conftest import ts
from core.models.canonical import LegacyEmployee, MachineSkill, Position, Role
from reconciliation.compare import compare_skills
from reconciliation.decisions import (
    Action,
    duplicate_deletions,
    reconcile_single_valued,
    reconcile_skills,
    resolve_duplicates,
)
from reconciliation.normalize import (
    EMPLOYEES,
    POSITIONS,
    ROLES,
    SKILLS,
    SkillPair,
    legacy_machine_pairs,
    normalize_assignment,
    normalize_record,
    normalize_records,
)


def _employee(**fields) -> LegacyEmployee:
    raw = {"id": "emp-1", "employee_id": "E001", "nombre": "ANA GARCIA"}
    raw.update(fields)
    return normalize_record(LegacyEmployee, raw)


def _assignment(machine_id, record_id=None, **fields) -> MachineSkill:
    raw = {"id": record_id or f"a-{machine_id}", "employee_id": "emp-1", "machine_id": machine_id}
    raw.update(fields)
    return normalize_assignment(raw)


def _decide(employee, assignments, **kwargs):
    pairs = legacy_machine_pairs(employee)
    comparison = compare_skills(employee.id, pairs, assignments)
    return reconcile_skills(employee, pairs, assignments, comparison, **kwargs)


class TestCompareSkills:
    """Set comparison of legacy pairs and canonical assignments."""

    def test_equal_sets_coincide(self):
        pairs = [SkillPair("emp-1", "M7", 1), SkillPair("emp-1", "M3", 2)]
        assignments = [
            _assignment("M3", orden_preferencia=2, nivel_competencia="Experto"),
            _assignment("M7", orden_preferencia=1, nivel_competencia="Experto"),
        ]
        comparison = compare_skills("emp-1", pairs, assignments)

        assert comparison.coincide
        assert comparison.missing_in_canonical == []
        assert comparison.extra_in_canonical == []
        assert comparison.order_mismatches == []
        assert comparison.incomplete == []

    def test_order_independent_and_stable_under_duplicates(self):
        """Same verdict for any permutation or repetition of either side."""
        pairs = [SkillPair("emp-1", m, i) for i, m in enumerate(["M1", "M2", "M3", "M2"], start=1)]
        assignments = [_assignment(m, orden_preferencia=i, nivel_competencia="X")
                       for i, m in enumerate(["M1", "M2", "M4"], start=1)]
        expected = compare_skills("emp-1", pairs, assignments).to_dict()

        rng = random.Random(7)
        for _ in range(10):
            shuffled_pairs = pairs + [rng.choice(pairs)]
            rng.shuffle(shuffled_pairs)
            shuffled_assignments = list(assignments)
            rng.shuffle(shuffled_assignments)
            result = compare_skills("emp-1", shuffled_pairs, shuffled_assignments)

            assert result.coincide == expected["coincide"]
            assert result.missing_in_canonical == expected["missing_in_canonical"]
            assert result.extra_in_canonical == expected["extra_in_canonical"]

    def test_missing_and_extra(self):
        pairs = [SkillPair("emp-1", "M1", 1), SkillPair("emp-1", "M2", 2)]
        assignments = [_assignment("M2"), _assignment("M5")]
        comparison = compare_skills("emp-1", pairs, assignments)

        assert not comparison.coincide
        assert comparison.missing_in_canonical == ["M1"]
        assert comparison.extra_in_canonical == ["M5"]

    def test_incomplete_is_not_part_of_equality(self):
        pairs = [SkillPair("emp-1", "M1", 1)]
        comparison = compare_skills("emp-1", pairs, [_assignment("M1", nivel_competencia="Experto")])

        assert comparison.coincide
        assert comparison.has_quality_issues
        assert comparison.incomplete[0].missing_fields == ["preference_order"]

    def test_order_mismatch_uses_lowest_slot(self):
        pairs = [SkillPair("emp-1", "M1", 3), SkillPair("emp-1", "M1", 1)]
        comparison = compare_skills("emp-1", pairs, [_assignment("M1", orden_preferencia=2, nivel_competencia="X")])

        assert comparison.coincide
        assert comparison.order_mismatches == [{"machine_id": "M1", "legacy_order": 1, "canonical_order": 2}]


class TestReconcileSkills:
    """Skill assignment decisions."""

    def test_missing_machines_created_in_slot_order(self):
        """Two filled slots, no assignments -> two CREATEs with order 1 and 2."""
        employee = _employee(maquina_1="M7", maquina_2="M3")
        decisions = _decide(employee, [])

        assert [d.action for d in decisions] == [Action.CREATE, Action.CREATE]
        assert [d.fields["machine_id"] for d in decisions] == ["M7", "M3"]
        assert [d.fields["orden_preferencia"] for d in decisions] == [1, 2]
        assert all(d.fields["nivel_competencia"] == "Intermedio" for d in decisions)
        assert all(d.fields["employee_id"] == "emp-1" for d in decisions)
        assert all(d.collection == SKILLS for d in decisions)

    def test_incomplete_counterpart_updated(self):
        """Competency set but order absent -> UPDATE filling only the order."""
        employee = _employee(maquina_1="M7")
        decisions = _decide(employee, [_assignment("M7", nivel_competencia="Experto")])

        assert len(decisions) == 1
        decision = decisions[0]
        assert decision.action == Action.UPDATE
        assert decision.record_id == "a-M7"
        assert decision.fields == {"orden_preferencia": 1}

    def test_update_fills_missing_competency(self):
        employee = _employee(maquina_2="M7")
        decisions = _decide(employee, [_assignment("M7", orden_preferencia=5)])

        assert decisions[0].action == Action.UPDATE
        assert decisions[0].fields == {"nivel_competencia": "Intermedio"}

    def test_complete_and_equal_is_no_action(self):
        employee = _employee(maquina_1="M7")
        decisions = _decide(employee, [_assignment("M7", orden_preferencia=1, nivel_competencia="Experto")])

        assert [d.action for d in decisions] == [Action.NO_ACTION]
        assert decisions[0].key == "emp-1"

    def test_extra_canonical_assignment_is_flagged_not_deleted(self):
        employee = _employee(maquina_1="M7")
        decisions = _decide(employee, [
            _assignment("M7", orden_preferencia=1, nivel_competencia="X"),
            _assignment("M9", orden_preferencia=2, nivel_competencia="X"),
        ])

        assert [d.action for d in decisions] == [Action.FLAG_CONFLICT]
        assert decisions[0].reason == "assignment_not_in_legacy"
        assert decisions[0].record_id == "a-M9"
        assert not decisions[0].is_write

    def test_unknown_machine_is_flagged(self):
        employee = _employee(maquina_1="M7", maquina_2="GONE")
        pairs = legacy_machine_pairs(employee)
        resolved = [p for p in pairs if p.machine_id != "GONE"]
        unresolved = [p for p in pairs if p.machine_id == "GONE"]
        comparison = compare_skills(employee.id, resolved, [])

        decisions = reconcile_skills(employee, resolved, [], comparison, unresolved=unresolved)

        assert [d.action for d in decisions] == [Action.CREATE, Action.FLAG_CONFLICT]
        assert decisions[1].reason == "machine_not_found"
        assert decisions[1].context["slot"] == 2

    def test_repeated_machine_first_slot_wins(self):
        employee = _employee(maquina_1="M7", maquina_4="M7")
        decisions = _decide(employee, [])

        assert len(decisions) == 1
        assert decisions[0].fields["orden_preferencia"] == 1

    def test_deprecate_after_full_representation(self):
        employee = _employee(maquina_1="M7")
        decisions = _decide(employee, [], deprecate_legacy=True)

        assert [d.action for d in decisions] == [Action.CREATE, Action.DEPRECATE]
        deprecate = decisions[1]
        assert deprecate.collection == EMPLOYEES
        assert deprecate.record_id == "emp-1"
        assert deprecate.fields == {"machine_slots_status": "deprecated"}
        assert deprecate.requires_group_success
        assert deprecate.group == decisions[0].group

    def test_no_deprecate_with_conflicts_or_when_already_deprecated(self):
        conflicted = _decide(
            _employee(maquina_1="M7"),
            [_assignment("M9", orden_preferencia=1, nivel_competencia="X")],
            deprecate_legacy=True,
        )
        already = _decide(_employee(maquina_1="M7", machine_slots_status="deprecated"), [], deprecate_legacy=True)

        assert Action.DEPRECATE not in [d.action for d in conflicted]
        assert Action.DEPRECATE not in [d.action for d in already]

    def test_retired_legacy_completes_without_flagging(self):
        employee = _employee(machine_slots_status="deprecated")
        assignments = [
            _assignment("M1", nivel_competencia="Experto"),
            _assignment("M2", orden_preferencia=4, nivel_competencia="Experto"),
        ]
        comparison = compare_skills(employee.id, [], assignments)

        decisions = reconcile_skills(employee, [], assignments, comparison, legacy_retired=True)

        assert [d.action for d in decisions] == [Action.UPDATE]
        assert decisions[0].record_id == "a-M1"
        assert decisions[0].fields == {"orden_preferencia": 5}
        assert decisions[0].reason == "incomplete_assignment"

    def test_retired_legacy_complete_assignments_are_no_action(self):
        employee = _employee()
        assignments = [_assignment("M1", orden_preferencia=1, nivel_competencia="Experto")]
        comparison = compare_skills(employee.id, [], assignments)

        decisions = reconcile_skills(
            employee, [], assignments, comparison, legacy_retired=True, deprecate_legacy=True,
        )

        assert [d.action for d in decisions] == [Action.NO_ACTION]


class TestReconcileSingleValued:
    """SKIP / UPDATE / CREATE tri-state keyed by exact equality."""

    def test_department_name_updated_uppercased(self):
        position = normalize_record(Position, {"id": "p1", "name": "Operario", "department_name": "FABRICACION"})
        decision = reconcile_single_valued(
            Position, POSITIONS, "p1", {"department_name": "Producción".upper()}, position,
        )

        assert decision.action == Action.UPDATE
        assert decision.record_id == "p1"
        assert decision.fields == {"department_name": "PRODUCCIÓN"}
        assert decision.changes == {"department_name": {"from": "FABRICACION", "to": "PRODUCCIÓN"}}

    def test_skip_iff_all_compared_fields_equal(self):
        position = normalize_record(Position, {"id": "p1", "department_name": "PRODUCCIÓN"})

        same = reconcile_single_valued(Position, POSITIONS, "p1", {"department_name": "PRODUCCIÓN"}, position)
        case_differs = reconcile_single_valued(Position, POSITIONS, "p1", {"department_name": "Producción"}, position)

        assert same.action == Action.SKIP
        assert case_differs.action == Action.UPDATE

    def test_create_when_no_record_matches(self):
        decision = reconcile_single_valued(
            Role, ROLES, "ADMIN", {"code": "ADMIN", "name": "Administrador", "level": 100}, None,
            create_extras={"active": True},
        )

        assert decision.action == Action.CREATE
        assert decision.fields == {"code": "ADMIN", "name": "Administrador", "level": 100, "active": True}

    def test_empty_compared_fields_means_exists_is_enough(self):
        role = normalize_record(Role, {"id": "r1", "code": "ADMIN", "name": "Renamed", "level": 1})
        decision = reconcile_single_valued(
            Role, ROLES, "ADMIN", {"code": "ADMIN", "name": "Administrador", "level": 100}, role,
            compared_fields=[],
        )
        assert decision.action == Action.SKIP

    def test_update_extras_only_on_update(self):
        position = normalize_record(Position, {"id": "p1", "department_name": "A"})
        decision = reconcile_single_valued(
            Position, POSITIONS, "p1", {"department_name": "B"}, position, update_extras={"synced": True},
        )
        assert decision.fields == {"department_name": "B", "synced": True}
        assert "synced" not in decision.changes


class TestResolveDuplicates:
    """Newest-by-creation-timestamp tie-break."""

    def test_newest_role_survives(self):
        roles = normalize_records(Role, [
            {"id": "r1", "code": "ADMIN", "created_date": ts(1)},
            {"id": "r3", "code": "ADMIN", "created_date": ts(3)},
            {"id": "r2", "code": "ADMIN", "created_date": ts(2)},
        ])
        survivors, groups = resolve_duplicates(roles, lambda r: r.code)
        decisions = duplicate_deletions(groups, ROLES)

        assert [r.id for r in survivors] == ["r3"]
        assert sorted(d.record_id for d in decisions) == ["r1", "r2"]
        assert all(d.action == Action.DELETE for d in decisions)
        assert all(d.context["kept_record_id"] == "r3" for d in decisions)

    def test_sole_record_is_never_deleted(self):
        roles = normalize_records(Role, [{"id": "r1", "code": "ADMIN"}, {"id": "r2", "code": "OPERATOR"}])
        survivors, groups = resolve_duplicates(roles, lambda r: r.code)

        assert groups == []
        assert len(survivors) == 2

    def test_equal_timestamps_greatest_id_wins(self):
        roles = normalize_records(Role, [
            {"id": "r-b", "code": "X", "created_date": ts(5)},
            {"id": "r-c", "code": "X", "created_date": ts(5)},
            {"id": "r-a", "code": "X", "created_date": ts(5)},
        ])
        survivors, _ = resolve_duplicates(roles, lambda r: r.code)
        assert [r.id for r in survivors] == ["r-c"]

    def test_missing_timestamp_sorts_oldest(self):
        roles = normalize_records(Role, [
            {"id": "r-z", "code": "X"},
            {"id": "r-a", "code": "X", "created_date": ts(1)},
        ])
        survivors, groups = resolve_duplicates(roles, lambda r: r.code)

        assert [r.id for r in survivors] == ["r-a"]
        assert [r.id for r in groups[0].discard] == ["r-z"]

    def test_total_over_input_order(self):
        """The survivor does not depend on input order."""
        raw = [{"id": f"r{i}", "code": "X", "created_date": ts(i % 3)} for i in range(6)]
        rng = random.Random(3)
        winners = set()
        for _ in range(10):
            rng.shuffle(raw)
            survivors, _ = resolve_duplicates(normalize_records(Role, raw), lambda r: r.code)
            winners.add(survivors[0].id)
        assert winners == {"r5"}

    def test_empty_key_never_grouped(self):
        roles = normalize_records(Role, [{"id": "r1"}, {"id": "r2"}])
        survivors, groups = resolve_duplicates(roles, lambda r: r.code)
        assert len(survivors) == 2 and groups == []
