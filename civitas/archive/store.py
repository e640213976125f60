"""
Civitas — Archive Store
========================
Persistence for archive records. The only module that knows the
``archive_records`` table.

All operations take the caller's ``AsyncSession`` so that snapshot
resolution and record creation can share one transaction.

Usage:
    store = ArchiveStore()
    async with session.begin():
        record = await store.create(session, EntityKind.REQUEST, 12, snapshot)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from civitas.archive.filters import ArchiveFilters
from civitas.archive.kinds import EntityKind
from civitas.archive.snapshots import parse_snapshot
from civitas.core.exceptions import (
    AlreadyArchivedError,
    NotFoundError,
    ValidationError,
)
from civitas.db.models import Account, ArchiveRecord

_UNIQUE_SQLSTATE = "23505"
_FOREIGN_KEY_SQLSTATE = "23503"


def _violation_matches(exc: IntegrityError, sqlstate: str, sqlite_name: str) -> bool:
    """
    Classify an integrity error by driver error code.

    asyncpg exposes the SQLSTATE on the adapted error or its cause; SQLite
    reports the extended error name.
    """
    orig = exc.orig
    if getattr(orig, "sqlite_errorname", None) == sqlite_name:
        return True
    for source in (orig, getattr(orig, "__cause__", None)):
        if sqlstate in (
            getattr(source, "pgcode", None),
            getattr(source, "sqlstate", None),
        ):
            return True
    return False


def _is_unique_violation(exc: IntegrityError) -> bool:
    return _violation_matches(exc, _UNIQUE_SQLSTATE, "SQLITE_CONSTRAINT_UNIQUE")


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    return _violation_matches(
        exc, _FOREIGN_KEY_SQLSTATE, "SQLITE_CONSTRAINT_FOREIGNKEY"
    )


@dataclass
class ArchivePage:
    """One page of archive records, newest first."""

    records: list[ArchiveRecord] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


class ArchiveStore:
    """Repository over ``archive_records``."""

    async def create(
        self,
        session: AsyncSession,
        kind: EntityKind,
        entity_id: int,
        snapshot: dict,
        reason: str | None = None,
        actor_id: int | None = None,
    ) -> ArchiveRecord:
        """
        Insert the archive record for (kind, entity_id).

        There is no existence pre-check: a concurrent insert is detected by
        the unique constraint at flush time.

        Raises:
            AlreadyArchivedError: A record for (kind, entity_id) exists.
            ValidationError: ``actor_id`` names no account.
        """
        record = ArchiveRecord(
            entity_kind=kind.value,
            entity_id=entity_id,
            snapshot=snapshot,
            reason=reason,
            archived_by_id=actor_id,
        )
        session.add(record)
        try:
            await session.flush()
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise AlreadyArchivedError(
                    f"{kind.value} {entity_id} is already archived",
                    entity_kind=kind.value,
                    entity_id=entity_id,
                ) from exc
            if _is_foreign_key_violation(exc):
                raise ValidationError(
                    f"Unknown archiving account {actor_id}",
                    entity_kind=kind.value,
                    entity_id=entity_id,
                    details={"archived_by": actor_id},
                ) from exc
            raise

        archiver = None
        if actor_id is not None:
            archiver = await session.get(Account, actor_id)
        set_committed_value(record, "archived_by", archiver)
        return record

    async def find(
        self, session: AsyncSession, kind: EntityKind, entity_id: int
    ) -> ArchiveRecord | None:
        """Return the archive record for (kind, entity_id), or ``None``."""
        stmt = (
            select(ArchiveRecord)
            .options(selectinload(ArchiveRecord.archived_by))
            .where(
                ArchiveRecord.entity_kind == kind.value,
                ArchiveRecord.entity_id == entity_id,
            )
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def delete(
        self, session: AsyncSession, kind: EntityKind, entity_id: int
    ) -> None:
        """
        Delete the archive record for (kind, entity_id).

        Raises:
            NotFoundError: No record exists.
        """
        result = await session.execute(
            delete(ArchiveRecord).where(
                ArchiveRecord.entity_kind == kind.value,
                ArchiveRecord.entity_id == entity_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(
                f"No archive record for {kind.value} {entity_id}",
                entity_kind=kind.value,
                entity_id=entity_id,
            )

    async def list(
        self,
        session: AsyncSession,
        kind: EntityKind | None,
        filters: ArchiveFilters,
        page: int,
        page_size: int,
    ) -> ArchivePage:
        """
        Return one page of records ordered by ``archived_at`` descending.

        The archive date range is applied in SQL; snapshot predicates are
        evaluated on the typed snapshot before paginating.
        """
        stmt = select(ArchiveRecord)
        if kind is not None:
            stmt = stmt.where(ArchiveRecord.entity_kind == kind.value)
        if filters.archived_after is not None:
            stmt = stmt.where(ArchiveRecord.archived_at >= filters.archived_after)
        if filters.archived_before is not None:
            stmt = stmt.where(ArchiveRecord.archived_at < filters.archived_before)

        offset = (page - 1) * page_size
        ordered = stmt.options(selectinload(ArchiveRecord.archived_by)).order_by(
            ArchiveRecord.archived_at.desc(), ArchiveRecord.entity_id.desc()
        )

        if not filters.predicates():
            total = (
                await session.execute(
                    select(func.count()).select_from(stmt.subquery())
                )
            ).scalar_one()
            rows = (
                await session.execute(ordered.offset(offset).limit(page_size))
            ).scalars().all()
            return ArchivePage(
                records=list(rows), total=total, page=page, page_size=page_size
            )

        matched = [
            record
            for record in (await session.execute(ordered)).scalars().all()
            if filters.matches(parse_snapshot(record.entity_kind, record.snapshot))
        ]
        return ArchivePage(
            records=matched[offset:offset + page_size],
            total=len(matched),
            page=page,
            page_size=page_size,
        )

    async def count_grouped_by_kind(
        self, session: AsyncSession
    ) -> dict[EntityKind, int]:
        """Count records per kind. Kinds without records are absent."""
        rows = await session.execute(
            select(ArchiveRecord.entity_kind, func.count(ArchiveRecord.id))
            .group_by(ArchiveRecord.entity_kind)
        )
        return {EntityKind(kind): count for kind, count in rows.all()}

    async def archived_ids(
        self, session: AsyncSession, kind: EntityKind
    ) -> set[int]:
        """Return the ids of every archived entity of ``kind``."""
        rows = await session.execute(
            select(ArchiveRecord.entity_id).where(
                ArchiveRecord.entity_kind == kind.value
            )
        )
        return set(rows.scalars().all())
