"""Connectors - remote system integrations.

The reconciliation pipeline depends ONLY on the ``EntityStore`` interface;
wire-level details (URLs, headers, retries) stay inside the connector.
"""

from connectors.entity_store import (
    EntityStore,
    EntityStoreClient,
    StoreApiError,
    StoreAuthenticationError,
)

__all__ = [
    "EntityStore",
    "EntityStoreClient",
    "StoreApiError",
    "StoreAuthenticationError",
]
