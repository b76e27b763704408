"""Report Builder - aggregates one run into a ReconciliationReport."""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from core.errors import DataQualityWarning
from core.models.refs import REPORT_COUNT_KEYS, ReconciliationReport
from reconciliation.decisions import Action, Decision
from reconciliation.executor import ExecutionResult


COUNT_KEY = {
    Action.CREATE: "created",
    Action.UPDATE: "updated",
    Action.SKIP: "skipped",
    Action.DELETE: "deleted",
    Action.FLAG_CONFLICT: "flagged",
    Action.NO_ACTION: "no_action",
    Action.DEPRECATE: "deprecated",
}


def count_decisions(decisions: Iterable[Decision]) -> Dict[str, int]:
    counts = {key: 0 for key in REPORT_COUNT_KEYS}
    for decision in decisions:
        counts[COUNT_KEY[decision.action]] += 1
    return counts


def build_report(
    run_id: str,
    job: str,
    started_at: datetime,
    decisions: List[Decision],
    execution: ExecutionResult,
    warnings: Optional[Iterable[DataQualityWarning]] = None,
    stats: Optional[Dict[str, Any]] = None,
    dry_run: bool = False,
) -> ReconciliationReport:
    """Build the run report.

    In a dry run the counts describe what would have been done; otherwise
    write decisions count only once applied, so a failed CREATE shows up in
    ``errors`` and not in ``created``.
    """
    if dry_run:
        counted = decisions
    else:
        applied = {id(d) for d in execution.applied}
        counted = [d for d in decisions if not d.is_write or id(d) in applied]

    counts = count_decisions(counted)
    counts["errors"] = len(execution.errors)

    return ReconciliationReport(
        run_id=run_id,
        job=job,
        dry_run=dry_run,
        started_at=started_at,
        finished_at=datetime.utcnow(),
        counts=counts,
        applied=[d.to_dict() for d in execution.applied],
        planned=[d.to_dict() for d in decisions if d.is_write] if dry_run else [],
        conflicts=[d.to_dict() for d in decisions if d.action == Action.FLAG_CONFLICT],
        warnings=[w.to_dict() for w in warnings or []],
        error_details=[e.to_dict() for e in execution.errors],
        stats=stats or {},
    )
