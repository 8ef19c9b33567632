# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application factory for the tenancy API.

Mounts the health endpoints at the root and the provisioning and operator routers
under ``/api/v1``. Services are built once in the lifespan and handed to
routes through the dependencies module.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src import __version__
from src.api.dependencies import close_services, init_services
from src.api.routes import health
from src.api.v1 import router as v1_router
from src.core.config import get_settings
from src.infrastructure.database.connection import DatabaseError
from src.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build services on startup and release the pool on shutdown.

    Outside production a datastore that is down at boot only produces a
    warning; the health endpoints report it and routes answer 503 until restart.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting tenancy API %s (environment=%s, debug=%s)",
        __version__,
        settings.environment,
        settings.debug,
    )

    try:
        await init_services(settings)
    except (DatabaseError, OSError) as e:
        if settings.is_production:
            logger.critical("Service initialization failed: %s", e)
            raise
        logger.warning("Service initialization failed, continuing without datastore: %s", e)
    else:
        logger.info("Provisioning and membership services ready")

    yield

    try:
        await close_services()
    except (DatabaseError, OSError) as e:
        logger.warning("Error closing datastore: %s", e)

    logger.info("Tenancy API stopped")


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "failure", "error_kind": "unexpected", "message": "Internal server error"},
    )


def create_app() -> FastAPI:
    """Create the FastAPI application.

    Interactive docs are only served when ``DEBUG`` is on.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    docs_enabled = settings.debug

    app = FastAPI(
        title="Tenancy API",
        description="Tenant provisioning and membership administration",
        version=__version__,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # =========================================================================
    # Middleware
    # =========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )
    app.add_exception_handler(Exception, _unhandled_error)

    # =========================================================================
    # Routes
    # =========================================================================

    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
