"""Tests for field-name and value normalization."""

from datetime import datetime, timezone

import pytest

from core.models.canonical import LegacyEmployee, LegacyMachine, LockerAssignment, MachineSkill, Machine, Process
from reconciliation.normalize import (
    MachineCatalog,
    SkillPair,
    legacy_machine_pairs,
    machine_slots,
    normalize_assignment,
    normalize_name,
    normalize_record,
    normalize_records,
    resolve_field,
    resolve_machine_refs,
    to_wire,
)


class TestMachineSlots:
    """Legacy positional slots -> {slot: machine ref}."""

    def test_skips_empty_slots(self):
        raw = {"maquina_1": "M7", "maquina_2": "", "maquina_3": "  M3 ", "maquina_4": None}
        assert machine_slots(raw) == {1: "M7", 3: "M3"}

    def test_no_ten_slot_ceiling(self):
        """Slots beyond the tenth are read too, in numeric order."""
        raw = {"maquina_12": "M12", "maquina_2": "M2", "maquina_10": "M10"}
        slots = machine_slots(raw)
        assert list(slots.items()) == [(2, "M2"), (10, "M10"), (12, "M12")]

    def test_ignores_unrelated_and_malformed_keys(self):
        raw = {"maquina_x": "MX", "maquina_": "M?", "maquina_0": "M0", "maquina_1": {"id": "M1"}, "maquina": "M"}
        assert machine_slots(raw) == {}

    def test_list_fallback_only_without_numbered_slots(self):
        assert machine_slots({"maquinas": ["M1", "", "M3"]}) == {1: "M1", 3: "M3"}
        assert machine_slots({"maquinas": ["M1"], "maquina_2": "M2"}) == {2: "M2"}


class TestNormalizeRecord:
    """Schema-mapping table application."""

    def test_legacy_employee_fields(self):
        raw = {
            "id": "emp-1",
            "employee_id": "E001",
            "codigo_empleado": 1001,
            "nombre": "ANA GARCIA",
            "departamento": "Fabricacion",
            "taquilla_vestuario": "Masculino",
            "taquilla_numero": 12,
            "maquina_1": "M7",
            "created_date": "2024-03-01T10:00:00Z",
        }
        employee = normalize_record(LegacyEmployee, raw)

        assert employee.id == "emp-1"
        assert employee.employee_id == "E001"
        assert employee.employee_code == "1001"
        assert employee.name == "ANA GARCIA"
        assert employee.locker_number == "12"
        assert employee.machine_slots == {1: "M7"}
        assert employee.created_date == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_competency_alias_priority(self):
        """nivel_competencia wins over the legacy nivel_habilidad alias."""
        both = normalize_assignment({"nivel_competencia": "Experto", "nivel_habilidad": "Básico"})
        legacy_only = normalize_assignment({"nivel_habilidad": "Básico"})
        blank_primary = normalize_assignment({"nivel_competencia": "  ", "nivel_habilidad": "Básico"})

        assert both.competency_level == "Experto"
        assert legacy_only.competency_level == "Básico"
        assert blank_primary.competency_level == "Básico"

    def test_preference_order_aliases_and_strings(self):
        assert normalize_assignment({"orden_preferencia": "2"}).preference_order == 2
        assert normalize_assignment({"orden": 3}).preference_order == 3
        assert normalize_assignment({"orden_preferencia": "n/a"}).preference_order is None

    def test_missing_fields_reported(self):
        assignment = normalize_assignment({"employee_id": "emp-1", "machine_id": "M7"})
        assert assignment.missing_fields == ["competency_level", "preference_order"]

    @pytest.mark.parametrize("raw", [None, "junk", 42, ["a"]])
    def test_malformed_input_yields_empty_record(self, raw):
        employee = normalize_record(LegacyEmployee, raw)
        assert employee.id is None
        assert employee.machine_slots == {}

    @pytest.mark.parametrize("order", ["inf", "-Infinity", "1e400", "nan", float("inf"), float("nan")])
    def test_non_finite_numbers_are_dropped(self, order):
        assignment = normalize_assignment({"machine_id": "M1", "orden_preferencia": order})
        assert assignment.machine_id == "M1"
        assert assignment.preference_order is None

    def test_bad_timestamp_is_dropped(self):
        assignment = normalize_record(MachineSkill, {"id": "a1", "created_date": "yesterday"})
        assert assignment.id == "a1"
        assert assignment.created_date is None

    def test_normalize_records_handles_none(self):
        assert normalize_records(Machine, None) == []


class TestHelpers:

    def test_resolve_field_first_populated(self):
        assert resolve_field({"a": "", "b": 0, "c": "x"}, ["a", "b", "c"]) == 0
        assert resolve_field({}, ["a"]) is None

    def test_to_wire_uses_primary_key(self):
        wire = to_wire(LockerAssignment, {"employee_id": "E1", "locker_room": "A", "locker_number": "5"})
        assert wire == {"employee_id": "E1", "vestuario": "A", "numero_taquilla_actual": "5"}

    def test_normalize_name(self):
        assert normalize_name("  producción   norte ") == "PRODUCCIÓN NORTE"
        assert normalize_name(None) == ""


class TestLegacyPairs:

    def test_slot_number_is_preference_order(self):
        employee = normalize_record(LegacyEmployee, {"id": "emp-1", "maquina_1": "M7", "maquina_2": "M3"})
        assert legacy_machine_pairs(employee) == [
            SkillPair("emp-1", "M7", 1),
            SkillPair("emp-1", "M3", 2),
        ]

    def test_without_id_no_pairs(self):
        employee = normalize_record(LegacyEmployee, {"maquina_1": "M7"})
        assert legacy_machine_pairs(employee) == []

    def test_catalog_resolves_current_and_legacy_ids(self, machines):
        catalog = MachineCatalog(normalize_records(Machine, machines))
        pairs = [SkillPair("e", "M7", 1), SkillPair("e", "OLD-9", 2), SkillPair("e", "GONE", 3)]

        resolved, unresolved = resolve_machine_refs(pairs, catalog)

        assert len(catalog) == 3
        assert resolved == [SkillPair("e", "M7", 1), SkillPair("e", "M9", 2)]
        assert unresolved == [SkillPair("e", "GONE", 3)]

    def test_without_catalog_everything_resolves(self):
        pairs = [SkillPair("e", "ANY", 1)]
        assert resolve_machine_refs(pairs, None) == (pairs, [])

    def test_catalog_falls_back_to_legacy_machine_code(self, machines):
        legacy = normalize_records(LegacyMachine, [
            {"id": "L5", "codigo": "torno-7"},
            {"id": "L6", "codigo": "NADA"},
            {"id": "L7"},
        ])
        catalog = MachineCatalog(normalize_records(Machine, machines), legacy)

        assert catalog.resolve("L5") == "M7"
        assert catalog.resolve("OLD-9") == "M9"
        assert catalog.resolve("L6") is None
        assert catalog.resolve("L7") is None
        assert "M3" in catalog and "L5" not in catalog


class TestMachineModels:

    def test_legacy_machine_fields(self):
        machine = normalize_record(LegacyMachine, {
            "id": "L1", "codigo": " ENV-1 ", "orden": "3", "procesos_ids": ["P1", "", None, {"x": 1}, "P2"],
        })
        assert machine.code == "ENV-1"
        assert machine.order == 3
        assert machine.process_ids == ["P1", "P2"]

    @pytest.mark.parametrize("value,expected", [
        (False, False), ("false", False), (0, False), ("sí", True), (1, True), ("maybe", None), (None, None),
    ])
    def test_process_active_flag(self, value, expected):
        assert normalize_record(Process, {"id": "P1", "activo": value}).active is expected

    def test_process_ids_not_a_list(self):
        assert normalize_record(LegacyMachine, {"procesos_ids": "P1"}).process_ids == []
