"""
Civitas — Access Guards
========================
Request-path hooks that deny access to archived resources.

Two independent guards, both built on ``ArchiveService.check_status``:

- ``guard_resource(kind)``: put on mutating routes of one entity kind.
  Denies (410) only when the status check explicitly says archived.
  ``check_status`` reads any failure as "not archived", so an ambiguous
  status lets the request through.
- ``require_active_account``: put on every authenticated router. Denies
  (410) an archived caller. If the status check itself raises, the request
  proceeds rather than locking every session out on a transient read
  failure.

Usage:
    @router.put("/requests/{entity_id}",
                dependencies=[Depends(guard_resource(EntityKind.REQUEST))])
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Depends

from civitas.api.deps import Principal, get_archive_service, get_current_principal
from civitas.archive.kinds import EntityKind
from civitas.archive.service import ArchiveService, ArchiveStatus
from civitas.core.exceptions import ArchivedAccessDeniedError
from civitas.core.logging import get_logger

logger = get_logger(__name__)


def _archive_details(status: ArchiveStatus) -> dict:
    record = status.record
    return {
        "archived_at": status.archived_at.isoformat() if status.archived_at else None,
        "archived_by": record.archived_by_id if record is not None else None,
    }


def guard_resource(kind: EntityKind) -> Callable[..., Awaitable[None]]:
    """Build the resource guard for routes with an ``entity_id`` path parameter."""

    async def _guard(
        entity_id: int,
        service: ArchiveService = Depends(get_archive_service),
    ) -> None:
        status = await service.check_status(kind, entity_id)
        if status.archived:
            logger.info(
                "guard.resource_archived",
                entity_kind=kind.value,
                entity_id=entity_id,
            )
            raise ArchivedAccessDeniedError(
                f"{kind.value} {entity_id} is archived and cannot be modified",
                entity_kind=kind.value,
                entity_id=entity_id,
                details=_archive_details(status),
            )

    return _guard


async def require_active_account(
    principal: Principal = Depends(get_current_principal),
    service: ArchiveService = Depends(get_archive_service),
) -> Principal:
    """Self guard: reject callers whose own account is archived."""
    try:
        status = await service.check_status(EntityKind.ACCOUNT, principal.account_id)
    except Exception as exc:
        logger.warning(
            "guard.self_check_failed",
            account_id=principal.account_id,
            error=str(exc),
        )
        return principal

    if status.archived:
        logger.info("guard.account_archived", account_id=principal.account_id)
        raise ArchivedAccessDeniedError(
            "Your account is archived. Access denied.",
            entity_kind=EntityKind.ACCOUNT.value,
            entity_id=principal.account_id,
            details={
                "archived_at": (
                    status.archived_at.isoformat() if status.archived_at else None
                ),
            },
        )
    return principal
