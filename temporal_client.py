"""Temporal client factory.

Connects to Temporal Cloud (API key over TLS) or to a local dev server when
no API key is configured.
"""

from typing import Optional

from temporalio.client import Client

from core.config import Settings, get_settings


async def get_temporal_client(settings: Optional[Settings] = None) -> Client:
    """Create and return a connected Temporal client.

    Reads configuration from settings (environment):
    - TEMPORAL_ENDPOINT: e.g. "namespace.tmprl.cloud:7233" or "localhost:7233"
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: Cloud API key; TLS is enabled when set

    Returns:
        Connected Temporal client

    Raises:
        ValueError: If TEMPORAL_ENDPOINT is not set
    """
    settings = settings or get_settings()
    endpoint = settings.temporal_endpoint

    if not endpoint:
        raise ValueError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal endpoint (e.g., 'localhost:7233')"
        )

    return await Client.connect(
        target_host=endpoint,
        namespace=settings.temporal_namespace,
        tls=bool(settings.temporal_api_key),
        api_key=settings.temporal_api_key,
    )
