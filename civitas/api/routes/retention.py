"""
Civitas — Retention API Routes
===============================
Retention policy administration and operational sweep controls.

Usage:
    GET    /api/v1/retention/policies                          — List (longest first)
    POST   /api/v1/retention/policies                          — Create
    PUT    /api/v1/retention/policies/{policy_id}              — Update
    DELETE /api/v1/retention/policies/{policy_id}              — Delete
    POST   /api/v1/retention/sweep                             — Run a sweep now
    POST   /api/v1/retention/requests/{request_id}/force-archive — Bypass policies
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from civitas.api.deps import (
    Principal,
    get_policy_engine,
    get_scheduler,
    require_admin_role,
    require_archive_role,
)
from civitas.api.guards import require_active_account
from civitas.core.logging import get_logger
from civitas.db.models import RetentionPolicy
from civitas.retention.policies import RetentionPolicyEngine
from civitas.retention.scheduler import RetentionScheduler

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/retention",
    tags=["retention"],
    dependencies=[Depends(require_active_account)],
)


# ── Request / Response Schemas ──────────────────────────────────────────


class PolicyResponse(BaseModel):
    """Retention policy details."""

    id: int
    category_id: int
    duration_months: int
    description: str
    created_at: datetime | None = None


class PolicyCreateRequest(BaseModel):
    category_id: int
    duration_months: int = Field(..., ge=1, le=1200)
    description: str = Field("", max_length=2000)


class PolicyUpdateRequest(BaseModel):
    duration_months: int | None = Field(None, ge=1, le=1200)
    description: str | None = Field(None, max_length=2000)


class PolicyDeleteResponse(BaseModel):
    message: str
    policy_id: int


class SweepResponse(BaseModel):
    """Sweep outcome."""

    archived_count: int
    error_count: int
    skipped_count: int
    total_processed: int
    errors: list[str]


class ForceArchiveRequest(BaseModel):
    reason: str = Field("Manual remediation", min_length=1, max_length=2000)


class ForceArchiveResponse(BaseModel):
    success: bool
    request_id: int
    error: str | None = None
    error_kind: str | None = None


# ── Policies ────────────────────────────────────────────────────────────


@router.get(
    "/policies",
    response_model=list[PolicyResponse],
    summary="List retention policies",
)
async def list_policies(
    category_id: int | None = Query(None),
    _: Principal = Depends(require_archive_role),
    engine: RetentionPolicyEngine = Depends(get_policy_engine),
) -> list[PolicyResponse]:
    """Policies sorted by duration, longest first."""
    policies = await engine.list_for_display(category_id)
    return [_policy_to_response(p) for p in policies]


@router.post(
    "/policies",
    response_model=PolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a retention policy",
)
async def create_policy(
    body: PolicyCreateRequest,
    _: Principal = Depends(require_admin_role),
    engine: RetentionPolicyEngine = Depends(get_policy_engine),
) -> PolicyResponse:
    policy = await engine.create_policy(
        body.category_id, body.duration_months, body.description
    )
    return _policy_to_response(policy)


@router.put(
    "/policies/{policy_id}",
    response_model=PolicyResponse,
    summary="Update a retention policy",
)
async def update_policy(
    policy_id: int,
    body: PolicyUpdateRequest,
    _: Principal = Depends(require_admin_role),
    engine: RetentionPolicyEngine = Depends(get_policy_engine),
) -> PolicyResponse:
    """Only the provided fields are changed."""
    policy = await engine.update_policy(
        policy_id,
        duration_months=body.duration_months,
        description=body.description,
    )
    return _policy_to_response(policy)


@router.delete(
    "/policies/{policy_id}",
    response_model=PolicyDeleteResponse,
    summary="Delete a retention policy",
)
async def delete_policy(
    policy_id: int,
    _: Principal = Depends(require_admin_role),
    engine: RetentionPolicyEngine = Depends(get_policy_engine),
) -> PolicyDeleteResponse:
    await engine.delete_policy(policy_id)
    return PolicyDeleteResponse(message="Retention policy deleted", policy_id=policy_id)


# ── Sweep controls ──────────────────────────────────────────────────────


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Run a retention sweep now",
)
async def run_sweep(
    principal: Principal = Depends(require_admin_role),
    scheduler: RetentionScheduler = Depends(get_scheduler),
) -> SweepResponse:
    """Run the daily sweep on demand, outside the schedule."""
    logger.info("api.retention.sweep_requested", requested_by=principal.account_id)
    result = await scheduler.run_now()
    return SweepResponse(**result.to_dict(), errors=result.errors)


@router.post(
    "/requests/{request_id}/force-archive",
    response_model=ForceArchiveResponse,
    summary="Archive one request, bypassing retention policies",
)
async def force_archive(
    request_id: int,
    body: ForceArchiveRequest | None = None,
    principal: Principal = Depends(require_admin_role),
    scheduler: RetentionScheduler = Depends(get_scheduler),
) -> ForceArchiveResponse:
    """Remediation path. Failures are reported in the body, not as HTTP errors."""
    logger.info(
        "api.retention.force_archive_requested",
        request_id=request_id,
        requested_by=principal.account_id,
    )
    body = body or ForceArchiveRequest()
    result = await scheduler.force_archive(request_id, body.reason)
    return ForceArchiveResponse(
        success=result.success,
        request_id=result.request_id,
        error=result.error,
        error_kind=result.error_kind,
    )


def _policy_to_response(policy: RetentionPolicy) -> PolicyResponse:
    return PolicyResponse(
        id=policy.id,
        category_id=policy.category_id,
        duration_months=policy.duration_months,
        description=policy.description,
        created_at=policy.created_at,
    )
