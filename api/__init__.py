"""API Package.

FastAPI server exposing the reconciliation jobs to admin callers.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
