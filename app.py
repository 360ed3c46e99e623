"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from sessionboard.controllers.schedule_controller import router as schedule_router
from sessionboard.controllers.session_controller import batch_router
from sessionboard.controllers.session_controller import router as session_router
from sessionboard.repository.data_repository import DataRepository
from sessionboard.services.auth_service import AuthService
from sessionboard.services.batch_service import SessionBatchService
from sessionboard.services.import_service import SessionImportService
from sessionboard.services.scheduling_service import AutoScheduleService
from sessionboard.utils.config import Settings, get_settings
from sessionboard.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    No global singletons; every dependency is traceable from this function.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    # --- Repository (one SQLite connection per operation) ---
    repository = DataRepository(settings)

    # --- Services (business logic, no direct DB access) ---
    auth_service = AuthService(repository=repository, settings=settings)
    schedule_service = AutoScheduleService(
        repository=repository,
        auth_service=auth_service,
        settings=settings,
    )
    import_service = SessionImportService(
        repository=repository,
        auth_service=auth_service,
        settings=settings,
    )
    batch_service = SessionBatchService(
        repository=repository,
        auth_service=auth_service,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(schedule_router)
    app.include_router(session_router)
    app.include_router(batch_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.auth_service = auth_service
    app.state.schedule_service = schedule_service
    app.state.import_service = import_service
    app.state.batch_service = batch_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema creation must precede the optional demo seed.
    """
    repository: DataRepository = app.state.repository
    settings: Settings = app.state.settings

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo event (skipped if events exist)")
        demo_token = repository.seed_demo_event()
        if demo_token is not None and not settings.demo_admin_token:
            logger.info("Demo owner API token issued | token=%s", demo_token)

    logger.info("Startup complete | system ready")


# Module-level app object for uvicorn
app = create_app()
