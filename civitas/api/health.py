"""
Civitas — Health Endpoint
==========================
Database connectivity and retention scheduler state.
"""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from civitas.api import deps
from civitas.db.session import get_engine

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response schema."""
    status: str
    database: str
    scheduler: str


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="System health check",
    description="Returns connectivity status for the database and scheduler state.",
)
async def health_check() -> HealthResponse:
    """
    Health endpoint.

    Overall status is 'healthy' only if the database answers.
    Scheduler is 'running', 'stopped' or 'unconfigured'; it does not
    affect the overall status.
    """
    db_status = await _check_database()
    return HealthResponse(
        status="healthy" if db_status == "ok" else "degraded",
        database=db_status,
        scheduler=_scheduler_state(),
    )


async def _check_database() -> str:
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "ok"
    except Exception:
        return "error"


def _scheduler_state() -> str:
    try:
        scheduler = deps.get_scheduler()
    except RuntimeError:
        return "unconfigured"
    return "running" if scheduler.running else "stopped"
