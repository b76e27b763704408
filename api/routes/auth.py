"""Caller authentication for reconciliation endpoints.

The remote store owns identity: the caller's bearer token is forwarded to
the store's ``User/me`` endpoint and the returned role decides access. Only
callers whose role is ``admin`` may run reconciliation jobs.

Reads and writes of a run use the service token, never the caller's token.
"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Header

from connectors.entity_store.base import EntityStore
from connectors.entity_store.client import EntityStoreClient, StoreAuthenticationError
from core.config import Settings, get_settings
from core.errors import AuthorizationError
from core.models.canonical import StoreUser
from core.observability.logging import get_logger

logger = get_logger(__name__)


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


async def get_current_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> StoreUser:
    """Resolve the caller through the remote store.

    Raises:
        AuthorizationError: 401 when the token is missing or rejected
    """
    token = _bearer_token(authorization)
    if not token:
        raise AuthorizationError("Unauthorized", status_code=401)

    async with EntityStoreClient(settings.store, token) as client:
        try:
            return await client.me()
        except StoreAuthenticationError as e:
            logger.warning(f"Caller token rejected by store: {e}")
            raise AuthorizationError("Unauthorized", status_code=401) from e


async def require_admin(user: StoreUser = Depends(get_current_user)) -> StoreUser:
    """Allow only callers whose store role is ``admin``.

    Raises:
        AuthorizationError: 403 for authenticated non-admin callers
    """
    if not user.is_admin:
        logger.warning(f"Rejected non-admin caller {user.email or user.id}")
        raise AuthorizationError("Forbidden: Admin access required", status_code=403)
    return user


async def get_entity_store(settings: Settings = Depends(get_settings)) -> AsyncIterator[EntityStore]:
    """Service-role store client for the duration of one request."""
    async with EntityStoreClient(settings.store, settings.service_token) as client:
        yield client
