"""Reconciliation endpoints.

- GET  /migrations            List available jobs
- POST /migrations/workflow   Start a multi-job ReconciliationWorkflow
- POST /migrations/{job}      Run one job and return its report

Every endpoint requires an admin caller.
"""

import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.routes.auth import get_entity_store, require_admin
from connectors.entity_store.base import EntityStore
from core.audit.events import AuditLogger, build_audit_logger
from core.config import Settings, get_settings
from core.errors import UnknownJobError
from core.models.canonical import StoreUser
from reconciliation.jobs import list_jobs, registry, run_job
from temporal_client import get_temporal_client
from workflows.reconciliation_workflow import (
    FULL_CONSOLIDATION,
    ReconciliationWorkflow,
    ReconciliationWorkflowInput,
)


router = APIRouter()


class MigrationRequest(BaseModel):
    """Request to run one reconciliation job."""
    dry_run: bool = Field(default=False, description="Plan only, nothing written")
    options: Dict[str, Any] = Field(default_factory=dict, description="Job-specific options")


class WorkflowRequest(BaseModel):
    """Request to start a multi-job reconciliation workflow."""
    jobs: List[str] = Field(default_factory=lambda: list(FULL_CONSOLIDATION), description="Jobs, run in order")
    dry_run: bool = False
    options: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Options keyed by job")
    continue_on_error: bool = False


# Lazy audit logger shared by requests
_audit: Optional[AuditLogger] = None


def get_audit_logger(settings: Settings = Depends(get_settings)) -> AuditLogger:
    global _audit
    if _audit is None:
        _audit = build_audit_logger(settings.audit_dir)
    return _audit


def _actor(user: StoreUser) -> str:
    return user.email or user.id or "admin"


@router.get("")
async def get_jobs(user: StoreUser = Depends(require_admin)) -> Dict[str, Any]:
    """List registered reconciliation jobs."""
    return {"jobs": list_jobs()}


@router.post("/workflow", status_code=202)
async def start_workflow(
    request: WorkflowRequest,
    user: StoreUser = Depends(require_admin),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Start ReconciliationWorkflow on the configured task queue."""
    unknown = [job for job in request.jobs if registry.get(job) is None]
    if unknown:
        raise UnknownJobError(f"Unknown reconciliation job: {', '.join(unknown)}")

    client = await get_temporal_client(settings)
    workflow_id = f"reconciliation-{uuid.uuid4().hex[:12]}"
    await client.start_workflow(
        ReconciliationWorkflow.run,
        ReconciliationWorkflowInput(
            jobs=request.jobs,
            dry_run=request.dry_run,
            options=request.options,
            continue_on_error=request.continue_on_error,
            actor=_actor(user),
        ),
        id=workflow_id,
        task_queue=settings.temporal_task_queue,
    )
    return {"success": True, "workflow_id": workflow_id, "jobs": request.jobs, "dry_run": request.dry_run}


@router.post("/{job}")
async def run_migration(
    job: str,
    request: Optional[MigrationRequest] = None,
    user: StoreUser = Depends(require_admin),
    store: EntityStore = Depends(get_entity_store),
    settings: Settings = Depends(get_settings),
    audit: AuditLogger = Depends(get_audit_logger),
) -> Dict[str, Any]:
    """Run one reconciliation job.

    Returns ``{success: true, <counts>, <detail lists>}``; write failures
    are listed in ``error_details`` and never fail the request.
    """
    if registry.get(job) is None:
        raise UnknownJobError(f"Unknown reconciliation job: {job}")

    request = request or MigrationRequest()
    report = await run_job(
        store,
        job,
        dry_run=request.dry_run,
        options=request.options,
        write_delay=settings.write_delay_seconds,
        page_size=settings.store.page_size,
        audit=audit,
        actor=_actor(user),
    )
    return report.to_response()
