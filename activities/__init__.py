"""Activity definitions module."""

from activities.reconcile import run_reconciliation_job, RunJobInput

__all__ = [
    "run_reconciliation_job",
    "RunJobInput",
]
