"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.dependencies import build_services
from src.api.v1 import dev_router
from src.api.v1 import router as v1_router
from src.config.settings import Settings, get_settings
from src.domain.exceptions import (
    AccountNotFound,
    ErrorKind,
    InvalidTransition,
    RegistrationError,
    ResendTooSoon,
)

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Identity-verified registration and passcode login",
    },
    {
        "name": "dev",
        "description": "Local backend helpers (not mounted for the hosted backend)",
    },
]

_KIND_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.RECOVERABLE: status.HTTP_409_CONFLICT,
    ErrorKind.FATAL_EXTERNAL: status.HTTP_502_BAD_GATEWAY,
}


def status_for(error: RegistrationError) -> int:
    """HTTP status for a domain error, by ErrorKind with a few specific overrides."""
    if isinstance(error, AccountNotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, ResendTooSoon):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(error, InvalidTransition):
        return status.HTTP_409_CONFLICT
    return _KIND_STATUS[error.kind]


async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    content = {"detail": exc.message, "kind": exc.kind.value}
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field
    headers = None
    if isinstance(exc, ResendTooSoon):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=code, content=content, headers=headers)


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the application for the given settings.

    Args:
        settings: Overrides get_settings(); tests pass their own
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Wires services on startup (opening the pool and running migrations
        when postgres backs the user store) and releases them on shutdown.
        """
        logger.info("Starting application...")
        services = await build_services(settings)
        app.state.services = services
        logger.info("Application startup complete")

        yield

        logger.info("Shutting down application...")
        await services.aclose()
        logger.info("Services closed")

    app = FastAPI(
        title="sovs-registration",
        description="Identity-verified account registration API",
        version="0.1.0",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    app.add_exception_handler(RegistrationError, registration_error_handler)

    app.include_router(v1_router, prefix="/v1")
    if settings.backend == "local":
        app.include_router(dev_router, prefix="/v1")

    @app.get("/health")
    async def health_check(request: Request) -> dict[str, str]:
        """
        Health check endpoint with database validation.

        Returns 200 OK if the application (and database, when used) is healthy.
        """
        pool = request.app.state.services.pool
        if pool is not None:
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
        return {"status": "healthy"}

    return app


logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
