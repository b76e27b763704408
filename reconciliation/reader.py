"""Entity Reader - full collection snapshots from the remote store.

Each run reads every collection it needs once, in full, before any decision
is taken. Reads are independent and may run concurrently; any
``TransportError`` propagates and aborts the run.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from connectors.entity_store.base import EntityStore
from core.observability.logging import get_logger, with_correlation

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 500


@dataclass(frozen=True)
class CollectionSpec:
    """One collection to read and its sort key."""
    collection: str
    sort: Optional[str] = None


async def read_collection(
    store: EntityStore,
    collection: str,
    sort: Optional[str] = None,
    page_size: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Read every record of ``collection``, paging until exhausted."""
    with with_correlation(collection=collection):
        records = await store.list_all(collection, sort=sort, page_size=page_size or DEFAULT_PAGE_SIZE)
        logger.info(f"Read {len(records)} records", extra_fields={"count": len(records)})
        return records


async def read_collections(
    store: EntityStore,
    specs: Iterable[CollectionSpec],
    page_size: Optional[int] = None,
    concurrent: bool = False,
) -> Dict[str, List[Dict[str, Any]]]:
    """Read several collections; returns ``{collection: records}``."""
    specs = list(specs)
    if concurrent:
        results = await asyncio.gather(*[
            read_collection(store, spec.collection, spec.sort, page_size) for spec in specs
        ])
        return {spec.collection: records for spec, records in zip(specs, results)}

    snapshot: Dict[str, List[Dict[str, Any]]] = {}
    for spec in specs:
        snapshot[spec.collection] = await read_collection(store, spec.collection, spec.sort, page_size)
    return snapshot
