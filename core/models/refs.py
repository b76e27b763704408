"""Run report and audit models for reconciliation tracking."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


REPORT_COUNT_KEYS = (
    "created",
    "updated",
    "skipped",
    "deleted",
    "flagged",
    "no_action",
    "deprecated",
    "errors",
)


class ReconciliationReport(BaseModel):
    """Aggregate outcome of a single reconciliation run.

    Built once at the end of a run and handed back to the caller; the
    service never persists it.

    Attributes:
        run_id: Unique run identifier
        job: Name of the job that produced the report
        dry_run: True when decisions were planned but not applied
        counts: Number of decisions per kind plus the error count
        applied: Literal diffs of every write that succeeded
        planned: Every write-producing decision (dry runs only)
        conflicts: FLAG_CONFLICT decisions for manual review
        warnings: Data-quality warnings (non-fatal)
        error_details: Per-record write failures
        stats: Job-specific statistics
    """
    run_id: str = Field(..., description="Unique run identifier")
    job: str = Field(..., description="Reconciliation job name")
    dry_run: bool = Field(default=False, description="Planned only, nothing written")
    started_at: datetime = Field(..., description="Run start timestamp")
    finished_at: datetime = Field(default_factory=datetime.utcnow, description="Report timestamp")
    counts: dict[str, int] = Field(default_factory=dict, description="Decision counts by kind")
    applied: list[dict] = Field(default_factory=list, description="Applied diffs")
    planned: list[dict] = Field(default_factory=list, description="Planned writes (dry run)")
    conflicts: list[dict] = Field(default_factory=list, description="Conflicts for manual review")
    warnings: list[dict] = Field(default_factory=list, description="Data-quality warnings")
    error_details: list[dict] = Field(default_factory=list, description="Per-record write errors")
    stats: dict[str, Any] = Field(default_factory=dict, description="Job-specific statistics")

    def to_response(self) -> dict:
        """Render the HTTP success body: ``{success: true, <counts>, <details>}``."""
        body: dict[str, Any] = {
            "success": True,
            "run_id": self.run_id,
            "job": self.job,
            "dry_run": self.dry_run,
        }
        for key in REPORT_COUNT_KEYS:
            body[key] = self.counts.get(key, 0)
        body.update({
            "stats": self.stats,
            "applied": self.applied,
            "conflicts": self.conflicts,
            "warnings": self.warnings,
            "error_details": self.error_details,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
        })
        if self.dry_run:
            body["planned"] = self.planned
        return body


# =============================================================================
# Audit Event Models
# =============================================================================

class AuditSeverity(str, Enum):
    """Severity levels for audit events."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class AuditEvent(BaseModel):
    """An audit event for tracking writes made against the remote store.

    Every applied or failed write of a run produces one event, so an
    operator can trace which run touched a record.
    """
    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Event timestamp")
    event_type: str = Field(..., description="Type of event (RUN_STARTED, WRITE_APPLIED, ...)")
    severity: AuditSeverity = Field(default=AuditSeverity.INFO, description="Event severity")

    # Context
    run_id: Optional[str] = Field(None, description="Reconciliation run")
    job: Optional[str] = Field(None, description="Reconciliation job")
    workflow_id: Optional[str] = Field(None, description="Temporal workflow ID")
    collection: Optional[str] = Field(None, description="Remote collection touched")
    record_id: Optional[str] = Field(None, description="Remote record touched")

    # Details
    message: str = Field(..., description="Human-readable message")
    details: dict = Field(default_factory=dict, description="Additional event details")

    # Actor
    actor: str = Field(default="system", description="Who/what performed the action")
