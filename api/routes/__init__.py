"""API Routes Package."""

from api.routes import auth, health, migrations

__all__ = [
    "auth",
    "health",
    "migrations",
]
