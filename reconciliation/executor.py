"""Migration Executor - applies write decisions to the remote store.

Writes are strictly sequential: each one is awaited before the next starts,
and a minimum delay separates consecutive writes to stay under the store's
rate limit. A failed write becomes a ``PerRecordWriteError`` entry and the
run continues; nothing already written is rolled back.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from connectors.entity_store.base import EntityStore
from core.audit.events import AuditEventType, AuditLogger
from core.errors import PerRecordWriteError, TransportError
from core.observability.logging import get_logger
from reconciliation.decisions import Action, Decision

logger = get_logger(__name__)


@dataclass
class ExecutionResult:
    """Outcome of applying one run's decisions."""
    applied: List[Decision] = field(default_factory=list)
    errors: List[PerRecordWriteError] = field(default_factory=list)
    skipped: List[Decision] = field(default_factory=list)
    created_ids: Dict[str, str] = field(default_factory=dict)


class MigrationExecutor:
    """Applies CREATE/UPDATE/DELETE/DEPRECATE decisions one by one.

    Args:
        store: Remote entity store
        write_delay: Minimum seconds between consecutive writes
        audit: Audit logger receiving one event per applied or failed write
        dry_run: Plan only; no write is sent
        run_id: Run identifier attached to audit events
        job: Job name attached to audit events
    """

    def __init__(
        self,
        store: EntityStore,
        write_delay: float = 0.1,
        audit: Optional[AuditLogger] = None,
        dry_run: bool = False,
        run_id: Optional[str] = None,
        job: Optional[str] = None,
    ):
        self.store = store
        self.write_delay = max(0.0, write_delay)
        self.audit = audit
        self.dry_run = dry_run
        self.run_id = run_id
        self.job = job

    async def _write(self, decision: Decision) -> Optional[Dict[str, Any]]:
        if decision.action == Action.CREATE:
            return await self.store.create(decision.collection, decision.fields)
        if decision.action in (Action.UPDATE, Action.DEPRECATE):
            return await self.store.update(decision.collection, decision.record_id, decision.fields)
        if decision.action == Action.DELETE:
            await self.store.delete(decision.collection, decision.record_id)
            return None
        raise ValueError(f"Not a write decision: {decision.action}")

    async def execute(self, decisions: Iterable[Decision]) -> ExecutionResult:
        """Apply every write decision in input order."""
        result = ExecutionResult()
        failed_groups: Set[str] = set()
        writes = [d for d in decisions if d.is_write]

        if self.dry_run:
            logger.info(f"Dry run: {len(writes)} writes planned, none applied")
            return result

        first = True
        for decision in writes:
            if decision.requires_group_success and decision.group in failed_groups:
                logger.warning(
                    f"Skipping {decision.action.value} {decision.collection} {decision.record_id}: "
                    f"earlier write for {decision.group} failed"
                )
                result.skipped.append(decision)
                continue

            if not first and self.write_delay:
                await asyncio.sleep(self.write_delay)
            first = False

            try:
                response = await self._write(decision)
            except Exception as e:
                status_code = e.status_code if isinstance(e, TransportError) else None
                error = PerRecordWriteError(
                    action=decision.action.value,
                    collection=decision.collection,
                    message=str(e),
                    record_id=decision.record_id,
                    key=decision.key,
                    context=decision.context,
                    status_code=status_code or None,
                )
                result.errors.append(error)
                if decision.group:
                    failed_groups.add(decision.group)
                logger.error(
                    f"{decision.action.value} {decision.collection} failed for {decision.key}: {e}",
                    extra_fields={"status_code": status_code, "error_type": type(e).__name__},
                )
                self._audit_failure(decision, error)
                continue

            if decision.action == Action.CREATE and isinstance(response, dict) and response.get("id"):
                decision.record_id = str(response["id"])
                result.created_ids[decision.key] = decision.record_id
            result.applied.append(decision)
            logger.debug(f"{decision.action.value} {decision.collection} {decision.key}")
            self._audit_applied(decision)

        logger.info(
            f"Applied {len(result.applied)} writes, {len(result.errors)} failed, "
            f"{len(result.skipped)} skipped"
        )
        return result

    def _audit_applied(self, decision: Decision) -> None:
        if not self.audit:
            return
        self.audit.log_info(
            AuditEventType.WRITE_APPLIED,
            f"{decision.action.value} {decision.collection} {decision.key}",
            run_id=self.run_id,
            job=self.job,
            collection=decision.collection,
            record_id=decision.record_id,
            details=decision.to_dict(),
        )

    def _audit_failure(self, decision: Decision, error: PerRecordWriteError) -> None:
        if not self.audit:
            return
        self.audit.log_error(
            AuditEventType.WRITE_FAILED,
            f"{decision.action.value} {decision.collection} {decision.key} failed: {error.message}",
            run_id=self.run_id,
            job=self.job,
            collection=decision.collection,
            record_id=decision.record_id,
            details=error.to_dict(),
        )
