"""Workforce reconciliation pipeline.

Entity Reader -> Normalizer -> Comparator -> Reconciler -> Migration Executor
-> Report Builder, composed per target by the jobs in ``reconciliation.jobs``.
"""

from reconciliation.compare import SkillComparison, compare_skills
from reconciliation.decisions import (
    Action,
    Decision,
    reconcile_single_valued,
    reconcile_skills,
    resolve_duplicates,
)
from reconciliation.executor import ExecutionResult, MigrationExecutor
from reconciliation.jobs import list_jobs, registry, run_job
from reconciliation.normalize import legacy_machine_pairs, normalize_assignment, normalize_record
from reconciliation.reader import read_collection, read_collections
from reconciliation.report import build_report

__all__ = [
    "Action",
    "Decision",
    "ExecutionResult",
    "MigrationExecutor",
    "SkillComparison",
    "build_report",
    "compare_skills",
    "legacy_machine_pairs",
    "list_jobs",
    "normalize_assignment",
    "normalize_record",
    "read_collection",
    "read_collections",
    "reconcile_single_valued",
    "reconcile_skills",
    "registry",
    "resolve_duplicates",
    "run_job",
]
