"""Workflow definitions module."""

from workflows.ping_workflow import PingWorkflow
from workflows.reconciliation_workflow import (
    FULL_CONSOLIDATION,
    ReconciliationWorkflow,
    ReconciliationWorkflowInput,
)

__all__ = [
    "FULL_CONSOLIDATION",
    "PingWorkflow",
    "ReconciliationWorkflow",
    "ReconciliationWorkflowInput",
]
