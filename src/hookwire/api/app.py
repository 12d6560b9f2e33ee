"""FastAPI application for Hookwire."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hookwire import __version__
from hookwire.config import Settings
from hookwire.exceptions import (
    AuthenticationError,
    ForbiddenError,
    HookwireError,
    NotFoundError,
    ValidationError,
)
from hookwire.logging import configure_logging, get_logger
from hookwire.service import HookwireService

from .router import router, set_service

logger = get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from hookwire.api import create_app

        app = create_app()
        # Run with: uvicorn hookwire.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build and initialize the HookwireService; close it on shutdown."""
        configure_logging(level=settings.log_level, format=settings.log_format)
        logger.info(
            "Starting Hookwire API",
            storage_backend=settings.storage_backend,
            scheduler_enabled=settings.scheduler_enabled,
        )

        service = HookwireService.create(settings)
        await service.initialize()
        set_service(service)

        yield

        await service.close()
        set_service(None)
        logger.info("Hookwire API stopped")

    app = FastAPI(
        title="Hookwire",
        description="Signed webhook delivery with retries, audit logs and analytics.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        logger.warning("Authentication failed", error=exc.message, path=str(request.url))
        return JSONResponse(status_code=401, content=exc.to_dict())

    @app.exception_handler(ForbiddenError)
    async def forbidden_error_handler(request: Request, exc: ForbiddenError) -> JSONResponse:
        logger.warning("Access denied", error=exc.message, path=str(request.url))
        return JSONResponse(status_code=403, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(HookwireError)
    async def hookwire_error_handler(request: Request, exc: HookwireError) -> JSONResponse:
        """Handle all other Hookwire errors with 500 status."""
        logger.error("Hookwire error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
