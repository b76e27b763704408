"""Reconciliation Workflow.

Runs an ordered list of reconciliation jobs, one activity per job. Jobs run
strictly one after another so their writes never interleave.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError

with workflow.unsafe.imports_passed_through():
    from activities.reconcile import run_reconciliation_job, RunJobInput


# Order used for a full consolidation
FULL_CONSOLIDATION = ["machines", "machine-references", "roles", "departments", "skills", "lockers"]


@dataclass
class ReconciliationWorkflowInput:
    """Input for ReconciliationWorkflow.

    Attributes:
        jobs: Job names, run in order
        dry_run: Plan only, nothing written
        options: Per-job options, keyed by job name
        continue_on_error: Run the remaining jobs after a failed one
        actor: Who started the workflow
    """
    jobs: List[str] = field(default_factory=lambda: list(FULL_CONSOLIDATION))
    dry_run: bool = False
    options: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    continue_on_error: bool = False
    actor: str = "system"


@workflow.defn
class ReconciliationWorkflow:
    """Sequential multi-job reconciliation."""

    def __init__(self) -> None:
        self.current_job = ""
        self.completed: List[str] = []

    @workflow.query
    def progress(self) -> dict:
        return {"current_job": self.current_job, "completed": list(self.completed)}

    @workflow.run
    async def run(self, input: ReconciliationWorkflowInput) -> dict:
        """Execute the jobs.

        Returns:
            dict with ``success`` and one step entry per job attempted
        """
        workflow_id = workflow.info().workflow_id
        started = workflow.now().isoformat()
        workflow.logger.info(f"Starting reconciliation of {', '.join(input.jobs)} (dry_run={input.dry_run})")

        activity_options = {
            "start_to_close_timeout": timedelta(minutes=30),
            "retry_policy": RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=5),
                maximum_interval=timedelta(minutes=1),
                backoff_coefficient=2.0,
                # Configuration problems won't self-heal
                non_retryable_error_types=["UnknownJobError", "StoreAuthenticationError"],
            ),
        }

        steps: List[dict] = []
        success = True
        for job in input.jobs:
            self.current_job = job
            try:
                report = await workflow.execute_activity(
                    run_reconciliation_job,
                    RunJobInput(
                        job=job,
                        dry_run=input.dry_run,
                        options=input.options.get(job, {}),
                        run_id=f"{workflow_id}-{job}",
                        actor=input.actor,
                    ),
                    **activity_options,
                )
            except ActivityError as e:
                success = False
                message = str(e.cause) if e.cause else str(e)
                workflow.logger.error(f"Job {job} failed: {message}")
                steps.append({"job": job, "status": "failed", "error": message})
                if not input.continue_on_error:
                    break
                continue

            self.completed.append(job)
            steps.append({"job": job, "status": "success", "report": report})

        self.current_job = ""
        return {
            "success": success,
            "workflow_id": workflow_id,
            "started": started,
            "finished": workflow.now().isoformat(),
            "dry_run": input.dry_run,
            "steps": steps,
        }
