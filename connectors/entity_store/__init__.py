"""Remote entity store connector (backend-as-a-service entity API)."""

from connectors.entity_store.base import EntityStore
from connectors.entity_store.client import (
    EntityStoreClient,
    StoreApiError,
    StoreAuthenticationError,
    StoreNotFoundError,
    StoreRateLimitError,
    StoreValidationError,
)

__all__ = [
    "EntityStore",
    "EntityStoreClient",
    "StoreApiError",
    "StoreAuthenticationError",
    "StoreNotFoundError",
    "StoreRateLimitError",
    "StoreValidationError",
]
