"""Abstract Entity Store Interface.

The reconciliation pipeline depends ONLY on this interface. The HTTP
implementation lives in ``connectors.entity_store.client``; tests provide an
in-memory implementation.

Every method raises ``core.errors.TransportError`` (or a subclass) when the
store is unreachable or answers with a non-success status.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from core.observability.logging import get_logger

logger = get_logger(__name__)

MAX_PAGES = 1000


class EntityStore(ABC):
    """Generic CRUD access to the collections of the remote store."""

    @abstractmethod
    async def list(
        self,
        collection: str,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return one page of records of ``collection``."""
        ...

    @abstractmethod
    async def create(self, collection: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create a record; returns it with its assigned identifier."""
        ...

    @abstractmethod
    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update fields of a record; returns the updated record."""
        ...

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> None:
        """Delete a record."""
        ...

    async def list_all(
        self,
        collection: str,
        sort: Optional[str] = None,
        page_size: int = 500,
        max_pages: int = MAX_PAGES,
    ) -> List[Dict[str, Any]]:
        """List all records with automatic pagination.

        Paging stops at the first empty or short page. A page that starts
        with the same record as the previous one means the store ignored
        ``skip``; it is dropped and paging stops. ``max_pages`` bounds the
        loop either way.

        Args:
            collection: Collection name
            sort: Sort key (prefix with ``-`` for descending)
            page_size: Page size for pagination
            max_pages: Maximum number of pages requested

        Returns:
            All records, in store order
        """
        all_results: List[Dict[str, Any]] = []
        skip = 0
        previous_first: Any = None

        for _ in range(max_pages):
            results = await self.list(collection, sort=sort, limit=page_size, skip=skip)

            if not results:
                break

            first = _record_marker(results[0])
            if previous_first is not None and first == previous_first:
                logger.warning(
                    f"{collection}: store returned the same page for skip={skip}, stopping pagination"
                )
                break
            previous_first = first

            all_results.extend(results)

            if len(results) < page_size:
                break

            skip += page_size
        else:
            logger.warning(f"{collection}: stopped after {max_pages} pages")

        return all_results


def _record_marker(record: Any) -> Any:
    if isinstance(record, dict) and record.get("id") is not None:
        return record["id"]
    return repr(record)
