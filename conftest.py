"""Shared fixtures: an in-memory entity store and record builders."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from connectors.entity_store.base import EntityStore
from connectors.entity_store.client import StoreApiError, StoreNotFoundError


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def ts(minutes: int) -> str:
    """ISO timestamp ``minutes`` after BASE_TIME."""
    return (BASE_TIME + timedelta(minutes=minutes)).isoformat().replace("+00:00", "Z")


Matcher = Callable[[Optional[str], Dict[str, Any]], bool]


class FakeEntityStore(EntityStore):
    """In-memory EntityStore with failure injection.

    Records are plain dicts keyed by collection. Writes are recorded in
    ``writes`` as ``(op, collection, record_id, fields)``.
    """

    def __init__(self, collections: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.collections: Dict[str, List[Dict[str, Any]]] = {
            name: [dict(r) for r in records] for name, records in (collections or {}).items()
        }
        self.writes: List[Tuple[str, str, Optional[str], Dict[str, Any]]] = []
        self.list_calls: List[Tuple[str, Optional[int], Optional[int]]] = []
        self.failures: List[Tuple[str, str, Matcher, Exception]] = []
        self.list_errors: Dict[str, Exception] = {}
        self._counter = 0

    def seed(self, collection: str, *records: Dict[str, Any]) -> None:
        self.collections.setdefault(collection, []).extend(dict(r) for r in records)

    def records(self, collection: str) -> List[Dict[str, Any]]:
        return self.collections.get(collection, [])

    def fail(
        self,
        op: str,
        collection: str,
        match: Optional[Matcher] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Make matching writes raise ``error`` (default: 500 StoreApiError)."""
        self.failures.append((
            op,
            collection,
            match or (lambda record_id, fields: True),
            error or StoreApiError("Internal Server Error", 500),
        ))

    def _check_failure(self, op: str, collection: str, record_id: Optional[str], fields: Dict[str, Any]) -> None:
        for fail_op, fail_collection, match, error in self.failures:
            if fail_op == op and fail_collection == collection and match(record_id, fields):
                raise error

    def _find(self, collection: str, record_id: str) -> Dict[str, Any]:
        for record in self.collections.get(collection, []):
            if record.get("id") == record_id:
                return record
        raise StoreNotFoundError(f"Resource not found: {collection}/{record_id}", 404)

    async def list(self, collection, sort=None, limit=None, skip=None):
        self.list_calls.append((collection, limit, skip))
        if collection in self.list_errors:
            raise self.list_errors[collection]
        records = [dict(r) for r in self.collections.get(collection, [])]
        if sort:
            key = sort.lstrip("-")
            records.sort(key=lambda r: str(r.get(key) or ""), reverse=sort.startswith("-"))
        start = skip or 0
        end = start + limit if limit else None
        return records[start:end]

    async def create(self, collection, fields):
        self._check_failure("create", collection, None, fields)
        self._counter += 1
        record = {
            "id": f"{collection.lower()}-new-{self._counter}",
            "created_date": ts(10_000 + self._counter),
            **fields,
        }
        self.collections.setdefault(collection, []).append(record)
        self.writes.append(("create", collection, record["id"], dict(fields)))
        return dict(record)

    async def update(self, collection, record_id, fields):
        self._check_failure("update", collection, record_id, fields)
        record = self._find(collection, record_id)
        record.update(fields)
        self.writes.append(("update", collection, record_id, dict(fields)))
        return dict(record)

    async def delete(self, collection, record_id):
        self._check_failure("delete", collection, record_id, {})
        record = self._find(collection, record_id)
        self.collections[collection].remove(record)
        self.writes.append(("delete", collection, record_id, {}))


@pytest.fixture
def store() -> FakeEntityStore:
    return FakeEntityStore()


@pytest.fixture
def audit():
    from core.audit.events import AuditLogger, InMemoryAuditBackend

    logger = AuditLogger()
    logger.add_backend(InMemoryAuditBackend())
    return logger


@pytest.fixture
def machines() -> List[Dict[str, Any]]:
    return [
        {"id": "M3", "codigo_maquina": "PRENSA-3", "nombre": "Prensa 3", "created_date": ts(1)},
        {"id": "M7", "codigo_maquina": "TORNO-7", "nombre": "Torno 7", "created_date": ts(2)},
        {"id": "M9", "codigo_maquina": "CORTE-9", "nombre": "Corte 9", "machine_id_legacy": "OLD-9", "created_date": ts(3)},
    ]
