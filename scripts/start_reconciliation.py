"""Start a ReconciliationWorkflow on Temporal.

This script connects to Temporal, starts a ReconciliationWorkflow for the
given jobs (full consolidation by default), and prints the result.
"""

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client
from workflows.reconciliation_workflow import (
    FULL_CONSOLIDATION,
    ReconciliationWorkflow,
    ReconciliationWorkflowInput,
)

logger = get_logger(__name__)


async def start_reconciliation_workflow(jobs, dry_run: bool = False, continue_on_error: bool = False) -> dict:
    """Start the workflow and wait for its result.

    Returns:
        dict: Result from workflow
    """
    settings = get_settings()
    workflow_id = f"reconciliation-{uuid.uuid4().hex[:12]}"

    client = await get_temporal_client(settings)
    logger.info(f"Connected to Temporal: {client.namespace}")

    logger.info(f"Starting ReconciliationWorkflow {workflow_id} on task queue '{settings.temporal_task_queue}'...")
    handle = await client.start_workflow(
        ReconciliationWorkflow.run,
        ReconciliationWorkflowInput(
            jobs=list(jobs),
            dry_run=dry_run,
            continue_on_error=continue_on_error,
            actor="cli",
        ),
        id=workflow_id,
        task_queue=settings.temporal_task_queue,
    )

    logger.info("Waiting for workflow result...")
    return await handle.result()


def main():
    parser = argparse.ArgumentParser(description="Start a reconciliation workflow")
    parser.add_argument("jobs", nargs="*", default=FULL_CONSOLIDATION, help="Jobs in order")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--continue-on-error", action="store_true")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    result = asyncio.run(start_reconciliation_workflow(args.jobs, args.dry_run, args.continue_on_error))
    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    sys.exit(0 if result.get("success") else 1)


if __name__ == "__main__":
    main()
