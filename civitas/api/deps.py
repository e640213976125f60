"""
Civitas — API Dependencies
===========================
Shared FastAPI dependency injectors for the API layer.

The archive service, policy engine and scheduler are built once at
startup (``configure_services``) and injected into routes and guards.
Tests swap them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header

from civitas.archive.service import ArchiveService
from civitas.core.config import get_settings
from civitas.core.exceptions import AuthenticationError, PermissionDeniedError
from civitas.core.middleware import correlation_id_ctx
from civitas.retention.policies import RetentionPolicyEngine
from civitas.retention.scheduler import RetentionScheduler

# ── Service registry ────────────────────────────────────────────────────

_archive_service: ArchiveService | None = None
_policy_engine: RetentionPolicyEngine | None = None
_scheduler: RetentionScheduler | None = None


def configure_services(
    archive_service: ArchiveService,
    policy_engine: RetentionPolicyEngine,
    scheduler: RetentionScheduler,
) -> None:
    """Register the process-wide service instances. Called by the lifespan."""
    global _archive_service, _policy_engine, _scheduler
    _archive_service = archive_service
    _policy_engine = policy_engine
    _scheduler = scheduler


def reset_services() -> None:
    global _archive_service, _policy_engine, _scheduler
    _archive_service = None
    _policy_engine = None
    _scheduler = None


def get_archive_service() -> ArchiveService:
    if _archive_service is None:
        raise RuntimeError("Services not initialized. Call configure_services().")
    return _archive_service


def get_policy_engine() -> RetentionPolicyEngine:
    if _policy_engine is None:
        raise RuntimeError("Services not initialized. Call configure_services().")
    return _policy_engine


def get_scheduler() -> RetentionScheduler:
    if _scheduler is None:
        raise RuntimeError("Services not initialized. Call configure_services().")
    return _scheduler


# ── Request-scoped infrastructure ───────────────────────────────────────


def get_correlation_id() -> str | None:
    """
    Return the correlation ID for the current request.

    Populated by ``CorrelationMiddleware`` on every request.
    """
    return correlation_id_ctx.get(None)


# ── Identity & roles ────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated caller."""

    account_id: int
    role: str


def get_current_principal(
    x_account_id: str | None = Header(default=None, alias="X-Account-ID"),
    x_account_role: str | None = Header(default=None, alias="X-Account-Role"),
) -> Principal:
    """
    Return the caller injected by the upstream authentication layer.

    Token verification happens before requests reach this service; it
    forwards the verified identity as ``X-Account-ID`` / ``X-Account-Role``.
    """
    if not x_account_id or not x_account_role:
        raise AuthenticationError("Authentication required.")
    try:
        account_id = int(x_account_id)
    except ValueError as exc:
        raise AuthenticationError("Invalid account identity.") from exc
    return Principal(account_id=account_id, role=x_account_role.strip().lower())


def _require_roles(
    roles_of: Callable[[], list[str]],
) -> Callable[[Principal], Principal]:
    def _dependency(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        allowed = roles_of()
        if principal.role not in allowed:
            raise PermissionDeniedError(
                "Forbidden.", details={"allowed_roles": list(allowed)}
            )
        return principal

    return _dependency


require_archive_role = _require_roles(lambda: get_settings().archive_roles)
require_admin_role = _require_roles(lambda: get_settings().admin_roles)
