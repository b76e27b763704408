"""Service configuration.

All settings come from environment variables, optionally loaded from a
``.env`` file at the repository root.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class RetryConfig:
    """Retry behaviour for remote store requests."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: tuple = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


@dataclass
class StoreConfig:
    """Connection settings for the remote entity store."""
    base_url: str = "https://api.base44.app"
    app_id: str = ""
    page_size: int = 500
    timeout_seconds: int = 30
    retry_config: RetryConfig = field(default_factory=RetryConfig)

    def get_entities_url(self, collection: str) -> str:
        """URL of an entity collection."""
        return f"{self.base_url.rstrip('/')}/api/apps/{self.app_id}/entities/{collection}"

    def get_record_url(self, collection: str, record_id: str) -> str:
        return f"{self.get_entities_url(collection)}/{record_id}"

    def get_me_url(self) -> str:
        return f"{self.get_entities_url('User')}/me"


@dataclass
class Settings:
    """Top-level settings for API, CLI and worker processes."""
    store: StoreConfig = field(default_factory=StoreConfig)
    service_token: str = ""
    write_delay_seconds: float = 0.1
    log_level: str = "INFO"
    log_json: bool = False
    debug: bool = False
    audit_dir: Optional[str] = None
    temporal_endpoint: Optional[str] = None
    temporal_namespace: str = "default"
    temporal_api_key: Optional[str] = None
    temporal_task_queue: str = "workforce-reconciliation"

    @classmethod
    def from_env(cls) -> "Settings":
        store = StoreConfig(
            base_url=os.getenv("STORE_BASE_URL", "https://api.base44.app"),
            app_id=os.getenv("STORE_APP_ID", ""),
            page_size=int(os.getenv("STORE_PAGE_SIZE", "500")),
            timeout_seconds=int(os.getenv("STORE_TIMEOUT_SECONDS", "30")),
            retry_config=RetryConfig(
                max_retries=int(os.getenv("STORE_MAX_RETRIES", "3")),
            ),
        )
        return cls(
            store=store,
            service_token=os.getenv("STORE_SERVICE_TOKEN", ""),
            write_delay_seconds=float(os.getenv("WRITE_DELAY_SECONDS", "0.1")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("LOG_JSON"),
            debug=_env_bool("DEBUG"),
            audit_dir=os.getenv("AUDIT_DIR") or None,
            temporal_endpoint=os.getenv("TEMPORAL_ENDPOINT") or None,
            temporal_namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
            temporal_api_key=os.getenv("TEMPORAL_API_KEY") or None,
            temporal_task_queue=os.getenv("TEMPORAL_TASK_QUEUE", "workforce-reconciliation"),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings (lazy init)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
