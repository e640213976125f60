"""
Civitas — API Routes Package
=============================
Aggregates the route modules under ``/api/v1``.
"""

from civitas.api.routes.archives import router as archives_router
from civitas.api.routes.retention import router as retention_router

__all__ = [
    "archives_router",
    "retention_router",
]
