"""
Civitas — Archive Service
==========================
Archive, restore and query archival state for any supported entity kind.

Orchestrates the ``SnapshotResolver`` and the ``ArchiveStore``. Raises the
typed failures of ``civitas.core.exceptions``; callers classify by
``ErrorKind``.

Invariants:
- At most one archive record per (kind, id); a lost race surfaces as
  ``AlreadyArchivedError``, never as a generic failure.
- Archiving and restoring never touch the entity's own row.
- ``check_status`` never raises.

Usage:
    service = ArchiveService(session_factory)
    record = await service.archive(EntityKind.REQUEST, 12, reason="closed", actor_id=3)
    status = await service.check_status("request", 12)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from civitas.archive.filters import ArchiveFilters
from civitas.archive.kinds import EntityKind, parse_entity_kind
from civitas.archive.snapshots import SnapshotResolver
from civitas.archive.store import ArchivePage, ArchiveStore
from civitas.core.config import get_settings
from civitas.core.exceptions import CivitasError, InternalError, ValidationError
from civitas.core.logging import get_logger
from civitas.db.models import ArchiveRecord

logger = get_logger(__name__)


# ── Result types ────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ArchiveStatus:
    """Archival state of one entity."""

    archived: bool
    record: ArchiveRecord | None = None
    archived_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class RestoreResult:
    entity_kind: EntityKind
    entity_id: int


@dataclass(frozen=True, slots=True)
class ArchiveStats:
    """Record counts per kind (every kind present) and the grand total."""

    by_kind: dict[EntityKind, int] = field(default_factory=dict)
    total: int = 0


# ── Service ─────────────────────────────────────────────────────────────


class ArchiveService:
    """
    Generic entity archival.

    Each public operation runs in its own session from ``session_factory``.
    The store and resolver are injectable so tests can substitute them.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: ArchiveStore | None = None,
        resolver: SnapshotResolver | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._store = store or ArchiveStore()
        self._resolver = resolver or SnapshotResolver()

    # ── Archive ─────────────────────────────────────────────────────────

    async def archive(
        self,
        kind: str | EntityKind,
        entity_id: int,
        reason: str | None = None,
        actor_id: int | None = None,
    ) -> ArchiveRecord:
        """
        Snapshot the entity and create its archive record.

        Snapshot resolution and record creation share one transaction.
        ``actor_id`` is ``None`` when the retention sweep archives.

        Raises:
            ValidationError: Unsupported kind.
            NotFoundError: The entity does not exist.
            AlreadyArchivedError: The entity is already archived.
            InternalError: Any other failure.
        """
        parsed = parse_entity_kind(kind)
        reason = reason.strip() if reason and reason.strip() else None

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    snapshot = await self._resolver.resolve(session, parsed, entity_id)
                    record = await self._store.create(
                        session,
                        parsed,
                        entity_id,
                        snapshot.model_dump(mode="json"),
                        reason=reason,
                        actor_id=actor_id,
                    )
        except CivitasError as exc:
            logger.info(
                "archive.rejected",
                entity_kind=parsed.value,
                entity_id=entity_id,
                kind=exc.kind.value,
            )
            raise
        except Exception as exc:
            logger.error(
                "archive.failed",
                entity_kind=parsed.value,
                entity_id=entity_id,
                error=str(exc),
            )
            raise InternalError(
                f"Archiving {parsed.value} {entity_id} failed",
                entity_kind=parsed.value,
                entity_id=entity_id,
            ) from exc

        logger.info(
            "archive.created",
            entity_kind=parsed.value,
            entity_id=entity_id,
            archived_by=actor_id,
            automatic=actor_id is None,
        )
        return record

    # ── Restore ─────────────────────────────────────────────────────────

    async def restore(self, kind: str | EntityKind, entity_id: int) -> RestoreResult:
        """
        Delete the archive record, returning the entity to Active.

        Raises:
            ValidationError: Unsupported kind.
            NotFoundError: No archive record exists.
            InternalError: Any other failure.
        """
        parsed = parse_entity_kind(kind)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._store.delete(session, parsed, entity_id)
        except CivitasError:
            raise
        except Exception as exc:
            logger.error(
                "archive.restore_failed",
                entity_kind=parsed.value,
                entity_id=entity_id,
                error=str(exc),
            )
            raise InternalError(
                f"Restoring {parsed.value} {entity_id} failed",
                entity_kind=parsed.value,
                entity_id=entity_id,
            ) from exc

        logger.info("archive.restored", entity_kind=parsed.value, entity_id=entity_id)
        return RestoreResult(entity_kind=parsed, entity_id=entity_id)

    # ── Status ──────────────────────────────────────────────────────────

    async def check_status(
        self, kind: str | EntityKind, entity_id: int
    ) -> ArchiveStatus:
        """
        Report whether (kind, entity_id) is archived.

        Never raises: this sits on the request path of the access guards,
        so any failure (including an unsupported kind) reads as not archived.
        """
        try:
            parsed = parse_entity_kind(kind)
            async with self._session_factory() as session:
                record = await self._store.find(session, parsed, entity_id)
        except Exception as exc:
            logger.warning(
                "archive.status_check_failed",
                entity_kind=str(kind),
                entity_id=entity_id,
                error=str(exc),
            )
            return ArchiveStatus(archived=False)

        if record is None:
            return ArchiveStatus(archived=False)
        return ArchiveStatus(
            archived=True, record=record, archived_at=record.archived_at
        )

    # ── Queries ─────────────────────────────────────────────────────────

    async def list_with_filters(
        self,
        kind: str | EntityKind | None = None,
        filters: ArchiveFilters | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> ArchivePage:
        """
        List archive records newest first, filtered on their snapshots.

        ``kind=None`` lists every kind. ``page_size`` defaults to and is
        capped by the configured archive page sizes.

        Raises:
            ValidationError: Unsupported kind or invalid pagination.
        """
        settings = get_settings()
        parsed = parse_entity_kind(kind) if kind is not None else None
        if page < 1:
            raise ValidationError("page must be >= 1", details={"page": page})
        if page_size is None:
            page_size = settings.archive_page_size_default
        if page_size < 1:
            raise ValidationError(
                "limit must be >= 1", details={"limit": page_size}
            )
        page_size = min(page_size, settings.archive_page_size_max)

        async with self._session_factory() as session:
            return await self._store.list(
                session, parsed, filters or ArchiveFilters(), page, page_size
            )

    async def stats(self) -> ArchiveStats:
        """Count archive records per kind, plus the grand total."""
        async with self._session_factory() as session:
            counts = await self._store.count_grouped_by_kind(session)
        by_kind = {kind: counts.get(kind, 0) for kind in EntityKind}
        return ArchiveStats(by_kind=by_kind, total=sum(by_kind.values()))

    async def archived_ids(self, kind: str | EntityKind) -> set[int]:
        """Return the ids of every archived entity of ``kind``."""
        parsed = parse_entity_kind(kind)
        async with self._session_factory() as session:
            return await self._store.archived_ids(session, parsed)
