"""
Observability Tests

Validates the logging and audit stack:
1. Correlation context is set, merged and reset around a run
2. Formatters include correlation IDs and extra fields
3. Audit events are persisted by the in-memory and JSON file backends
4. A failing audit backend never aborts a run
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta

import pytest

from core.audit.events import (
    AuditEventType,
    AuditLogger,
    InMemoryAuditBackend,
    build_audit_logger,
)
from core.models.refs import AuditSeverity
import core.observability.logging as obs_logging
from core.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    configure_logging,
    get_correlation_context,
    get_logger,
    with_correlation,
)


def _record(msg="hello", extra_fields=None):
    record = logging.LogRecord("reconciliation.jobs", logging.INFO, __file__, 1, msg, (), None)
    record.extra_fields = extra_fields or {}
    return record


class TestCorrelationContext:

    def test_nested_contexts_merge_and_reset(self):
        assert get_correlation_context().run_id is None

        with with_correlation(run_id="run-1", job="skills"):
            with with_correlation(employee_id="emp-1") as ctx:
                assert ctx.to_dict() == {"run_id": "run-1", "job": "skills", "employee_id": "emp-1"}
            assert get_correlation_context().employee_id is None
            assert get_correlation_context().run_id == "run-1"

        assert get_correlation_context().to_dict() == {}

    def test_none_values_do_not_override(self):
        with with_correlation(run_id="run-1"):
            with with_correlation(run_id=None, collection="Role") as ctx:
                assert ctx.run_id == "run-1"
                assert ctx.collection == "Role"

    def test_concurrent_tasks_are_isolated(self):
        seen = {}

        async def task(name):
            with with_correlation(collection=name):
                await asyncio.sleep(0)
                seen[name] = get_correlation_context().collection

        async def main():
            with with_correlation(run_id="run-1"):
                await asyncio.gather(task("A"), task("B"))

        asyncio.run(main())
        assert seen == {"A": "A", "B": "B"}


class TestFormatters:

    def test_structured_formatter_includes_context_and_extras(self):
        with with_correlation(run_id="run-1", job="lockers"):
            line = StructuredFormatter().format(_record(extra_fields={"count": 3}))

        data = json.loads(line)
        assert data["message"] == "hello"
        assert data["run_id"] == "run-1"
        assert data["job"] == "lockers"
        assert data["count"] == 3

    def test_human_formatter_shows_job_run_and_employee(self):
        with with_correlation(run_id="run-abcdef123456789", job="skills", employee_id="emp-7"):
            line = HumanReadableFormatter().format(_record())

        assert "[skills/run-abcdef12/emp:emp-7]" in line
        assert line.endswith("hello")

    def test_human_formatter_without_context(self):
        assert "[-]: hello" in HumanReadableFormatter().format(_record())

    def test_logger_passes_extra_fields(self, caplog):
        logger = get_logger("reconciliation.test")
        with caplog.at_level(logging.INFO, logger="reconciliation.test"):
            logger.info("Read 3 records", extra_fields={"count": 3})

        assert caplog.records[-1].extra_fields == {"count": 3}

    def test_exception_logging_keeps_traceback(self, caplog):
        logger = get_logger("reconciliation.test")
        with caplog.at_level(logging.ERROR, logger="reconciliation.test"):
            try:
                raise ValueError("boom")
            except ValueError:
                logger.exception("failed")

        assert caplog.records[-1].exc_info[0] is ValueError

    def test_reconfigure_switches_format(self):
        configure_logging(level="DEBUG", json_format=True)
        try:
            assert isinstance(obs_logging._handler.formatter, StructuredFormatter)
            assert logging.getLogger("reconciliation").level == logging.DEBUG
        finally:
            configure_logging()
        assert isinstance(obs_logging._handler.formatter, HumanReadableFormatter)


class TestAuditBackends:

    def test_in_memory_filters(self):
        audit = AuditLogger()
        audit.add_backend(InMemoryAuditBackend())

        audit.log_info(AuditEventType.RUN_STARTED, "started", run_id="run-1", job="roles")
        audit.log_error(AuditEventType.WRITE_FAILED, "failed", run_id="run-1", record_id="r1")
        audit.log_info(AuditEventType.RUN_STARTED, "started", run_id="run-2")

        assert len(audit.query(run_id="run-1")) == 2
        failed = audit.query(event_type=AuditEventType.WRITE_FAILED.value)
        assert failed[0].severity == AuditSeverity.ERROR
        assert failed[0].record_id == "r1"
        assert len(audit.query(limit=1)) == 1

    def test_json_file_backend_round_trip(self, tmp_path):
        audit = build_audit_logger(str(tmp_path / "audit"))

        audit.log_warning(
            AuditEventType.CONFLICT_FLAGGED,
            "machine_not_found: emp-1:M99",
            run_id="run-9",
            collection="EmployeeMachineSkill",
            details={"slot": 2},
            actor="admin@example.com",
        )

        files = list((tmp_path / "audit").glob("*.json"))
        assert len(files) == 1
        events = audit.query(run_id="run-9", start_time=datetime.utcnow() - timedelta(days=1))
        assert len(events) == 1
        assert events[0].details == {"slot": 2}
        assert events[0].actor == "admin@example.com"
        assert events[0].severity == AuditSeverity.WARN

    def test_default_backend_is_in_memory(self):
        audit = build_audit_logger(None)
        audit.log_info(AuditEventType.RUN_COMPLETED, "done")
        assert len(audit.query()) == 1

    def test_unwritable_backend_does_not_raise(self, tmp_path):
        class BrokenBackend(InMemoryAuditBackend):
            def log(self, event):
                raise OSError("disk full")

        audit = AuditLogger()
        memory = InMemoryAuditBackend()
        audit.add_backend(BrokenBackend())
        audit.add_backend(memory)

        audit.log_info(AuditEventType.RUN_STARTED, "started")

        assert len(memory.query()) == 1

    def test_no_backends(self):
        assert AuditLogger().query() == []
