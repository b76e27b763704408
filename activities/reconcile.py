"""Reconciliation activities.

Temporal activity that runs one reconciliation job against the remote store
with the service credentials. Jobs recompute from current remote state, so
a retried activity never duplicates writes that already succeeded.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from temporalio import activity

from connectors.entity_store.client import EntityStoreClient
from core.audit.events import build_audit_logger
from core.config import get_settings
from reconciliation.jobs import run_job


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class RunJobInput:
    """Input for run_reconciliation_job activity.

    Attributes:
        job: Registered job name (skills, lockers, ...)
        dry_run: Plan only, nothing written
        options: Job-specific options
        run_id: Run identifier, derived from the workflow when empty
        actor: Who started the workflow
    """
    job: str
    dry_run: bool = False
    options: Dict[str, Any] = field(default_factory=dict)
    run_id: Optional[str] = None
    actor: str = "system"


# =============================================================================
# Activity Definition
# =============================================================================

@activity.defn
async def run_reconciliation_job(input: RunJobInput) -> dict:
    """Run one reconciliation job and return its report body.

    Args:
        input: RunJobInput naming the job and its options

    Returns:
        ``ReconciliationReport.to_response()`` of the run
    """
    info = activity.info()
    run_id = input.run_id or f"{info.workflow_id}-{input.job}"
    activity.logger.info(f"Running {input.job} (dry_run={input.dry_run}, attempt {info.attempt})")

    settings = get_settings()
    async with EntityStoreClient(settings.store, settings.service_token) as store:
        report = await run_job(
            store,
            input.job,
            dry_run=input.dry_run,
            options=input.options,
            write_delay=settings.write_delay_seconds,
            page_size=settings.store.page_size,
            audit=build_audit_logger(settings.audit_dir),
            run_id=run_id,
            actor=input.actor,
        )

    counts = report.counts
    if counts.get("errors"):
        activity.logger.warning(f"{input.job}: {counts['errors']} writes failed")
    activity.logger.info(
        f"{input.job} done: created={counts.get('created', 0)} updated={counts.get('updated', 0)} "
        f"deleted={counts.get('deleted', 0)} flagged={counts.get('flagged', 0)}"
    )
    return report.to_response()
