"""
Civitas — FastAPI Application
==============================
Application factory with lifecycle management and middleware pipeline.

Usage:
    uvicorn civitas.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from civitas.api import deps
from civitas.api.errors import register_exception_handlers
from civitas.api.health import router as health_router
from civitas.api.routes import archives_router, retention_router
from civitas.archive.service import ArchiveService
from civitas.core.config import get_settings
from civitas.core.logging import configure_logging, get_logger
from civitas.core.middleware import CorrelationMiddleware
from civitas.db.session import close_db, get_session_factory, init_db
from civitas.retention.policies import RetentionPolicyEngine
from civitas.retention.scheduler import RetentionScheduler
from civitas.retention.sweep import RetentionSweeper


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifecycle.

    Startup: configure logging, connect DB, build services, start the
    retention scheduler.
    Shutdown: stop the scheduler, close DB.
    """
    logger = get_logger("civitas.main")
    settings = get_settings()

    # ── Startup ──────────────────────────────────────────────────────
    configure_logging()
    logger.info("app.starting", environment=settings.environment.value)

    await init_db()
    logger.info("db.connected")

    session_factory = get_session_factory()
    archive_service = ArchiveService(session_factory)
    policy_engine = RetentionPolicyEngine(session_factory)
    scheduler = RetentionScheduler(
        RetentionSweeper(session_factory, archive_service, policy_engine)
    )
    deps.configure_services(archive_service, policy_engine, scheduler)

    if settings.retention_sweep_enabled:
        scheduler.start()

    logger.info("app.started")
    yield

    # ── Shutdown ─────────────────────────────────────────────────────
    logger.info("app.stopping")
    await scheduler.stop()
    deps.reset_services()
    await close_db()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    application = FastAPI(
        title="Civitas",
        description="Municipal request tracking — archival and retention",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    application.add_middleware(CorrelationMiddleware)
    register_exception_handlers(application)

    # ── Routers ──────────────────────────────────────────────────────
    application.include_router(health_router)
    application.include_router(archives_router)
    application.include_router(retention_router)

    return application


# Module-level instance for ``uvicorn civitas.main:app``
app = create_app()
