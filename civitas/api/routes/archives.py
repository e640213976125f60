"""
Civitas — Archive API Routes
=============================
REST endpoints for generic entity archival.

Usage:
    GET    /api/v1/archives                          — List (filters, pagination)
    GET    /api/v1/archives/stats                    — Counts per kind
    POST   /api/v1/archives/{kind}/{entity_id}        — Archive
    DELETE /api/v1/archives/{kind}/{entity_id}        — Restore
    GET    /api/v1/archives/{kind}/{entity_id}/status — Archival status

List, archive and restore require an archive role (admin, legal); stats
require admin. Every endpoint passes the caller's own-account guard.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from civitas.api.deps import (
    Principal,
    get_archive_service,
    get_correlation_id,
    require_admin_role,
    require_archive_role,
)
from civitas.api.guards import require_active_account
from civitas.archive.filters import ArchiveFilters
from civitas.archive.kinds import parse_entity_kind
from civitas.archive.service import ArchiveService
from civitas.core.logging import get_logger
from civitas.db.models import Account, ArchiveRecord

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/archives",
    tags=["archives"],
    dependencies=[Depends(require_active_account)],
)


# ── Request / Response Schemas ──────────────────────────────────────────


class ArchiverResponse(BaseModel):
    """The account that archived a record."""

    id: int
    name: str
    given_name: str | None
    email: str


class ArchiveRecordResponse(BaseModel):
    """Archive record returned by the API."""

    id: str
    entity_kind: str
    entity_id: int
    snapshot: dict[str, Any]
    reason: str | None
    archived_by: ArchiverResponse | None = Field(
        None, description="Null when archived by the retention sweep."
    )
    archived_at: datetime


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ArchiveListResponse(BaseModel):
    archives: list[ArchiveRecordResponse]
    pagination: PaginationResponse


class ArchiveCreateRequest(BaseModel):
    """Request body for archiving an entity."""

    reason: str | None = Field(
        None, max_length=2000, description="Optional rationale."
    )


class ArchiveCreateResponse(BaseModel):
    message: str
    archive: ArchiveRecordResponse


class RestoreResponse(BaseModel):
    message: str
    entity_kind: str
    entity_id: int


class ArchiveStatusResponse(BaseModel):
    archived: bool
    record: ArchiveRecordResponse | None = None


class ArchiveStatsResponse(BaseModel):
    by_kind: dict[str, int]
    total: int


# ── Endpoints ───────────────────────────────────────────────────────────


@router.get(
    "",
    response_model=ArchiveListResponse,
    summary="List archive records",
)
async def list_archives(
    kind: str | None = Query(None, description="request, organization or account"),
    search: str | None = Query(None, description="Substring of name, given name, email or title"),
    role: str | None = Query(None, description="Account role (account snapshots only)"),
    population_min: int | None = Query(None, ge=0),
    population_max: int | None = Query(None, ge=0),
    archived_from: date | None = Query(None),
    archived_to: date | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    _: Principal = Depends(require_archive_role),
    service: ArchiveService = Depends(get_archive_service),
) -> ArchiveListResponse:
    """Return archive records newest first, filtered on their snapshots."""
    filters = ArchiveFilters(
        search=search or None,
        role=role or None,
        population_min=population_min,
        population_max=population_max,
        archived_from=archived_from,
        archived_to=archived_to,
    )
    result = await service.list_with_filters(
        kind or None, filters, page=page, page_size=limit
    )
    return ArchiveListResponse(
        archives=[_record_to_response(r) for r in result.records],
        pagination=PaginationResponse(
            page=result.page,
            limit=result.page_size,
            total=result.total,
            pages=result.pages,
        ),
    )


@router.get(
    "/stats",
    response_model=ArchiveStatsResponse,
    summary="Archive statistics",
)
async def archive_stats(
    _: Principal = Depends(require_admin_role),
    service: ArchiveService = Depends(get_archive_service),
) -> ArchiveStatsResponse:
    """Count archive records per kind, plus the total."""
    stats = await service.stats()
    return ArchiveStatsResponse(
        by_kind={kind.value: count for kind, count in stats.by_kind.items()},
        total=stats.total,
    )


@router.post(
    "/{kind}/{entity_id}",
    response_model=ArchiveCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Archive an entity",
)
async def create_archive(
    kind: str,
    entity_id: int,
    body: ArchiveCreateRequest | None = None,
    principal: Principal = Depends(require_archive_role),
    service: ArchiveService = Depends(get_archive_service),
    correlation_id: str | None = Depends(get_correlation_id),
) -> ArchiveCreateResponse:
    """
    Snapshot the entity and mark it archived.

    400 unsupported kind, 404 entity missing, 409 already archived.
    """
    record = await service.archive(
        kind,
        entity_id,
        reason=body.reason if body else None,
        actor_id=principal.account_id,
    )
    logger.info(
        "api.archive.created",
        entity_kind=record.entity_kind,
        entity_id=entity_id,
        archived_by=principal.account_id,
        correlation_id=correlation_id,
    )
    return ArchiveCreateResponse(
        message=f"{record.entity_kind} {entity_id} archived",
        archive=_record_to_response(record),
    )


@router.delete(
    "/{kind}/{entity_id}",
    response_model=RestoreResponse,
    summary="Restore an archived entity",
)
async def restore_archive(
    kind: str,
    entity_id: int,
    principal: Principal = Depends(require_archive_role),
    service: ArchiveService = Depends(get_archive_service),
    correlation_id: str | None = Depends(get_correlation_id),
) -> RestoreResponse:
    """Delete the archive record. 404 when the entity is not archived."""
    result = await service.restore(kind, entity_id)
    logger.info(
        "api.archive.restored",
        entity_kind=result.entity_kind.value,
        entity_id=entity_id,
        restored_by=principal.account_id,
        correlation_id=correlation_id,
    )
    return RestoreResponse(
        message=f"{result.entity_kind.value} {entity_id} restored",
        entity_kind=result.entity_kind.value,
        entity_id=result.entity_id,
    )


@router.get(
    "/{kind}/{entity_id}/status",
    response_model=ArchiveStatusResponse,
    summary="Archival status of an entity",
)
async def archive_status(
    kind: str,
    entity_id: int,
    service: ArchiveService = Depends(get_archive_service),
) -> ArchiveStatusResponse:
    """Return whether the entity is archived, with its record if so."""
    result = await service.check_status(parse_entity_kind(kind), entity_id)
    return ArchiveStatusResponse(
        archived=result.archived,
        record=_record_to_response(result.record) if result.record else None,
    )


# ── Helpers ─────────────────────────────────────────────────────────────


def _record_to_response(record: ArchiveRecord) -> ArchiveRecordResponse:
    return ArchiveRecordResponse(
        id=str(record.id),
        entity_kind=record.entity_kind,
        entity_id=record.entity_id,
        snapshot=record.snapshot,
        reason=record.reason,
        archived_by=_archiver_to_response(record.archived_by),
        archived_at=record.archived_at,
    )


def _archiver_to_response(account: Account | None) -> ArchiverResponse | None:
    if account is None:
        return None
    return ArchiverResponse(
        id=account.id,
        name=account.name,
        given_name=account.given_name,
        email=account.email,
    )
