"""Mastara API service.

FastAPI application exposing the profile lifecycle operations:
- public fast-booking endpoint (guest find-or-create)
- staff patient endpoints (register, complete registration, archive, read)
- staff invitation endpoint
- health check

This module provides the app factory used by the ASGI entry point and by
tests, which inject their own services.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from mastara import __version__
from mastara.api.middleware import (
    ErrorHandlerMiddleware,
    RequestIDMiddleware,
    request_validation_handler,
)
from mastara.api.routers import employees_router, patients_router, public_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from mastara.core.config import Settings
    from mastara.services.employees import EmployeeService
    from mastara.services.iam import IAMService
    from mastara.services.lifecycle import ProfileLifecycleService

logger = logging.getLogger(__name__)

API_TITLE = "Mastara API"
API_PREFIX = "/api/v1"


def create_app(
    settings: Settings | None = None,
    *,
    lifecycle_service: ProfileLifecycleService | None = None,
    iam_service: IAMService | None = None,
    employee_service: EmployeeService | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Services passed in are used as-is. Missing services are built at
    startup from a pooled engine configured by ``settings`` (loaded from the
    environment when omitted); that engine is disposed on shutdown.

    Example:
        # Production (uvicorn mastara.api.main:app)
        app = create_app()

        # Tests
        app = create_app(lifecycle_service=fake_lifecycle, iam_service=fake_iam)
    """
    version = settings.app_version if settings else __version__

    app = FastAPI(
        title=API_TITLE,
        version=version,
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.state.lifecycle_service = lifecycle_service
    app.state.iam_service = iam_service
    app.state.employee_service = employee_service
    app.state.engine = None

    _add_middleware(app)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(public_router, prefix=API_PREFIX)
    app.include_router(patients_router, prefix=API_PREFIX)
    app.include_router(employees_router, prefix=API_PREFIX)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Liveness probe for container orchestration."""
        return {"status": "healthy"}

    logger.info("Mastara API application created (version=%s)", version)

    return app


def _add_middleware(app: FastAPI) -> None:
    # Last added is outermost: request ids must wrap error rendering
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    state = app.state
    if (
        state.lifecycle_service is None
        or state.iam_service is None
        or state.employee_service is None
    ):
        _build_services(app)
    try:
        yield
    finally:
        if state.engine is not None:
            await state.engine.dispose()
            state.engine = None
            logger.info("Database engine disposed")


def _build_services(app: FastAPI) -> None:
    from mastara.core.settings import get_settings
    from mastara.db import build_engine
    from mastara.db.transaction import TransactionManager
    from mastara.services.employees import EmployeeService
    from mastara.services.iam import IAMService
    from mastara.services.lifecycle import ProfileLifecycleService

    settings = app.state.settings or get_settings()
    app.state.settings = settings

    engine = build_engine(settings.database)
    app.state.engine = engine

    tx_manager = TransactionManager(engine, default_timeout=settings.transaction_timeout_seconds)
    if app.state.lifecycle_service is None:
        app.state.lifecycle_service = ProfileLifecycleService(tx_manager)
    if app.state.employee_service is None:
        app.state.employee_service = EmployeeService(tx_manager)
    if app.state.iam_service is None:
        app.state.iam_service = IAMService(engine)

    logger.info(
        "Services initialized (pool_size=%d, tx_timeout=%s)",
        settings.database.pool_size,
        settings.transaction_timeout_seconds,
    )
