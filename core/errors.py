"""Error kinds raised across the reconciliation service."""

from typing import Any, Dict, Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation failures."""


class AuthorizationError(ReconciliationError):
    """Caller is not authenticated (401) or lacks the admin role (403)."""
    def __init__(self, message: str, status_code: int = 403):
        super().__init__(message)
        self.status_code = status_code


class TransportError(ReconciliationError):
    """Remote store unreachable or returned a non-success status."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class UnknownJobError(ReconciliationError):
    """Requested reconciliation job is not registered."""


class PerRecordWriteError:
    """A single failed write, recorded in the run report instead of raised."""

    def __init__(
        self,
        action: str,
        collection: str,
        message: str,
        record_id: Optional[str] = None,
        key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.action = action
        self.collection = collection
        self.message = message
        self.record_id = record_id
        self.key = key
        self.context = context or {}
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "action": self.action,
            "collection": self.collection,
            "record_id": self.record_id,
            "key": self.key,
            "error": self.message,
            **self.context,
        }
        if self.status_code:
            data["status_code"] = self.status_code
        return data


class DataQualityWarning:
    """Non-fatal data issue surfaced in the report; never blocks a run."""

    def __init__(self, code: str, message: str, evidence: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.evidence = evidence or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "evidence": self.evidence,
        }
