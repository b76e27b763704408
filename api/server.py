"""FastAPI server for workforce reconciliation.

Main entry point for the API server.
"""

import traceback
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.routes import health, migrations
from core import __version__
from core.config import get_settings
from core.errors import AuthorizationError, ReconciliationError, UnknownJobError
from core.observability.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json, include_temporal=False)
    logger.info("Workforce reconciliation API starting up...")

    yield

    logger.info("Workforce reconciliation API shutting down...")


# =============================================================================
# Error Responses
# =============================================================================

async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


async def unknown_job_handler(request: Request, exc: UnknownJobError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 ``{error, stack?}``; the stack is only exposed in debug mode."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=(type(exc), exc, exc.__traceback__))
    content = {"error": str(exc) or type(exc).__name__}
    if get_settings().debug:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=content)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Workforce Reconciliation API",
        description="Admin endpoints reconciling legacy and canonical workforce data in the entity store",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthorizationError, authorization_error_handler)
    app.add_exception_handler(UnknownJobError, unknown_job_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ReconciliationError, unhandled_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(migrations.router, prefix="/migrations", tags=["Migrations"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
