"""Entity Store HTTP Client.

Low-level HTTP client for the backend-as-a-service entity API.
Handles authentication headers, pagination, retries, and error handling.
"""

from typing import Any, Dict, List, Optional
import asyncio
import json
import math

import aiohttp

from connectors.entity_store.base import EntityStore
from core.config import StoreConfig
from core.errors import TransportError
from core.models.canonical import StoreUser
from core.observability.logging import get_logger

logger = get_logger(__name__)


class StoreApiError(TransportError):
    """Base exception for entity store API errors."""
    pass


class StoreAuthenticationError(StoreApiError):
    """Authentication failed (401/403)."""
    pass


class StoreNotFoundError(StoreApiError):
    """Collection or record not found (404)."""
    pass


class StoreRateLimitError(StoreApiError):
    """Rate limit exceeded (429)."""
    def __init__(self, message: str, retry_after: float = 60):
        super().__init__(message, 429)
        self.retry_after = retry_after


class StoreValidationError(StoreApiError):
    """Payload rejected by the store (400/422)."""
    pass


def parse_retry_after(value: Optional[str], fallback: float) -> float:
    """Seconds to wait from a Retry-After header.

    Only the delta-seconds form is honoured; an HTTP-date or garbage value
    falls back to the client's own backoff delay.
    """
    if value is None:
        return fallback
    try:
        seconds = float(value.strip())
    except ValueError:
        return fallback
    if not math.isfinite(seconds) or seconds < 0:
        return fallback
    return seconds


class EntityStoreClient(EntityStore):
    """HTTP client for the remote entity store.

    Provides:
    - Bearer-token authenticated calls
    - Automatic pagination (``list_all``)
    - Error mapping and retries on 429/5xx

    Usage:
        async with EntityStoreClient(config, token) as client:
            employees = await client.list_all("EmployeeMasterDatabase")
            await client.update("LockerAssignment", record_id, {"vestuario": "A"})
    """

    def __init__(self, config: StoreConfig, token: str):
        """Initialize API client.

        Args:
            config: Store connection settings
            token: Bearer token (service token or the caller's own token)
        """
        self.config = config
        self.token = token
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def disconnect(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "EntityStoreClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make an authenticated API request with automatic retries.

        Args:
            method: HTTP method
            url: Full request URL
            params: Query parameters
            data: Request body

        Returns:
            Decoded JSON response (``{}`` for empty bodies)

        Raises:
            StoreAuthenticationError: Authentication failed
            StoreNotFoundError: Resource not found
            StoreRateLimitError: Rate limit exceeded after retries
            StoreValidationError: Payload rejected
            StoreApiError: Other API or network errors
        """
        if not self._session:
            raise StoreApiError("Not connected. Call connect() first.")

        retry_config = self.config.retry_config
        last_error: Optional[Exception] = None

        for attempt in range(retry_config.max_retries + 1):
            try:
                timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)

                async with self._session.request(
                    method,
                    url,
                    headers=self._get_headers(),
                    params=params,
                    json=data,
                    timeout=timeout,
                ) as response:
                    response_text = await response.text()

                    if response.status < 400:
                        if response.status == 204 or not response_text:
                            return {}
                        return json.loads(response_text)

                    if response.status in (401, 403):
                        raise StoreAuthenticationError(
                            f"Authentication failed: {response_text}",
                            response.status,
                            response_text,
                        )

                    if response.status == 404:
                        raise StoreNotFoundError(
                            f"Resource not found: {url}",
                            response.status,
                            response_text,
                        )

                    if response.status == 429:
                        retry_after = parse_retry_after(
                            response.headers.get("Retry-After"),
                            retry_config.get_delay(attempt),
                        )
                        if attempt < retry_config.max_retries:
                            logger.warning(f"Rate limited, waiting {retry_after:.1f}s...")
                            await asyncio.sleep(retry_after)
                            continue
                        raise StoreRateLimitError("Rate limit exceeded", retry_after)

                    if response.status in (400, 422):
                        raise StoreValidationError(
                            f"Validation error: {response_text}",
                            response.status,
                            response_text,
                        )

                    if response.status in retry_config.retry_on_status:
                        if attempt < retry_config.max_retries:
                            delay = retry_config.get_delay(attempt)
                            logger.warning(
                                f"Request failed with {response.status}, "
                                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                            )
                            await asyncio.sleep(delay)
                            continue

                    raise StoreApiError(
                        f"API error {response.status}: {response_text}",
                        response.status,
                        response_text,
                    )

            except StoreApiError:
                raise
            except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
                last_error = e
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"Request failed with {type(e).__name__}: {e}, "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise StoreApiError(
                    f"Request failed after {retry_config.max_retries} retries: {e}"
                ) from e

        raise StoreApiError(f"Request failed: {last_error}")

    async def me(self) -> StoreUser:
        """Resolve the user owning the client's token."""
        response = await self._request("GET", self.config.get_me_url())
        return StoreUser.model_validate(response)

    async def list(
        self,
        collection: str,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """List one page of a collection.

        Args:
            collection: Collection name (e.g., "EmployeeMasterDatabase")
            sort: Sort key, ``-`` prefix for descending
            limit: Maximum number to return
            skip: Number to skip (pagination)

        Returns:
            List of records
        """
        params = {}

        if sort:
            params["sort"] = sort
        if limit:
            params["limit"] = str(limit)
        if skip:
            params["skip"] = str(skip)

        response = await self._request("GET", self.config.get_entities_url(collection), params=params)
        if isinstance(response, dict):
            # Some deployments wrap pages in an envelope
            return response.get("items") or response.get("value") or []
        return response or []

    async def create(self, collection: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new record.

        Returns:
            Created record with its identifier
        """
        return await self._request("POST", self.config.get_entities_url(collection), data=fields)

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update fields of an existing record.

        Returns:
            Updated record
        """
        return await self._request("PUT", self.config.get_record_url(collection, record_id), data=fields)

    async def delete(self, collection: str, record_id: str) -> None:
        """Delete a record."""
        await self._request("DELETE", self.config.get_record_url(collection, record_id))
