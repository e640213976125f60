"""
Civitas — Archive Store Tests
==============================
Persistence of archive records: uniqueness, lookup, deletion, listing.
"""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from civitas.archive.filters import ArchiveFilters
from civitas.archive.kinds import EntityKind
from civitas.archive.store import (
    ArchivePage,
    ArchiveStore,
    _is_foreign_key_violation,
    _is_unique_violation,
)
from civitas.core.exceptions import (
    AlreadyArchivedError,
    NotFoundError,
    ValidationError,
)
from civitas.db.models import ArchiveRecord
from conftest import utc


@pytest.fixture
def store():
    return ArchiveStore()


async def _add(session_factory, kind, entity_id, archived_at, snapshot=None):
    async with session_factory() as session:
        async with session.begin():
            session.add(ArchiveRecord(
                entity_kind=kind.value,
                entity_id=entity_id,
                snapshot=snapshot or {"id": entity_id, "title": f"Request {entity_id}"},
                archived_at=archived_at,
            ))


class _DriverError(Exception):
    """Stands in for a DBAPI error carrying driver codes."""


class TestViolationClassification:

    @pytest.mark.parametrize("attr,code,unique,foreign_key", [
        ("sqlstate", "23505", True, False),
        ("pgcode", "23505", True, False),
        ("sqlstate", "23503", False, True),
        ("sqlite_errorname", "SQLITE_CONSTRAINT_UNIQUE", True, False),
        ("sqlite_errorname", "SQLITE_CONSTRAINT_FOREIGNKEY", False, True),
        ("sqlstate", "23514", False, False),
    ])
    def test_classified_by_driver_code(self, attr, code, unique, foreign_key):
        orig = _DriverError("duplicate key value violates unique constraint")
        setattr(orig, attr, code)
        exc = IntegrityError("INSERT", {}, orig)

        assert _is_unique_violation(exc) is unique
        assert _is_foreign_key_violation(exc) is foreign_key

    def test_code_on_wrapped_cause(self):
        cause = _DriverError()
        cause.sqlstate = "23503"
        orig = _DriverError()
        orig.__cause__ = cause

        assert _is_foreign_key_violation(IntegrityError("INSERT", {}, orig))


class TestCreate:

    async def test_create_then_find(self, session_factory, store):
        async with session_factory() as session:
            async with session.begin():
                created = await store.create(
                    session, EntityKind.REQUEST, 7, {"id": 7, "title": "x"},
                    reason="closed", actor_id=3,
                )

        async with session_factory() as session:
            found = await store.find(session, EntityKind.REQUEST, 7)

        assert found is not None
        assert found.id == created.id
        assert found.reason == "closed"
        assert found.archived_by_id == 3
        assert found.snapshot == {"id": 7, "title": "x"}

    async def test_duplicate_is_already_archived(self, session_factory, store):
        async with session_factory() as session:
            async with session.begin():
                await store.create(session, EntityKind.ACCOUNT, 4, {"id": 4})

        async with session_factory() as session:
            with pytest.raises(AlreadyArchivedError) as exc_info:
                async with session.begin():
                    await store.create(session, EntityKind.ACCOUNT, 4, {"id": 4})
        assert exc_info.value.entity_kind == "account"
        assert exc_info.value.entity_id == 4

    async def test_same_id_different_kind(self, session_factory, store):
        async with session_factory() as session:
            async with session.begin():
                await store.create(session, EntityKind.ACCOUNT, 1, {"id": 1})
                await store.create(session, EntityKind.ORGANIZATION, 1, {"id": 1})

        async with session_factory() as session:
            counts = await store.count_grouped_by_kind(session)
        assert counts == {EntityKind.ACCOUNT: 1, EntityKind.ORGANIZATION: 1}

    async def test_create_loads_archiver(self, session_factory, seed, store):
        async with session_factory() as session:
            async with session.begin():
                created = await store.create(
                    session, EntityKind.ORGANIZATION, seed.nuuk_id, {"id": seed.nuuk_id},
                    actor_id=seed.legal_id,
                )

        assert created.archived_by.email == "naja@civitas.test"

    async def test_unknown_archiver_is_validation_error(self, session_factory, store):
        orig = _DriverError("insert or update violates foreign key constraint")
        orig.sqlstate = "23503"
        failure = IntegrityError("INSERT INTO archive_records", {}, orig)

        async with session_factory() as session:
            with patch.object(session, "flush", AsyncMock(side_effect=failure)):
                with pytest.raises(ValidationError) as exc_info:
                    await store.create(
                        session, EntityKind.REQUEST, 7, {"id": 7}, actor_id=404
                    )

        assert exc_info.value.details == {"archived_by": 404}

    async def test_other_integrity_errors_propagate(self, session_factory, store):
        failure = IntegrityError("INSERT INTO archive_records", {}, _DriverError("check"))

        async with session_factory() as session:
            with patch.object(session, "flush", AsyncMock(side_effect=failure)):
                with pytest.raises(IntegrityError):
                    await store.create(session, EntityKind.REQUEST, 7, {"id": 7})


class TestFindAndDelete:

    async def test_find_missing(self, session_factory, store):
        async with session_factory() as session:
            assert await store.find(session, EntityKind.REQUEST, 1) is None

    async def test_delete_removes_record(self, session_factory, store):
        await _add(session_factory, EntityKind.REQUEST, 5, utc(2024, 5, 1))

        async with session_factory() as session:
            async with session.begin():
                await store.delete(session, EntityKind.REQUEST, 5)

        async with session_factory() as session:
            assert await store.find(session, EntityKind.REQUEST, 5) is None

    async def test_delete_missing_is_not_found(self, session_factory, store):
        async with session_factory() as session:
            with pytest.raises(NotFoundError):
                async with session.begin():
                    await store.delete(session, EntityKind.REQUEST, 5)

    async def test_archived_ids(self, session_factory, store):
        await _add(session_factory, EntityKind.REQUEST, 2, utc(2024, 5, 1))
        await _add(session_factory, EntityKind.REQUEST, 9, utc(2024, 5, 2))
        await _add(session_factory, EntityKind.ACCOUNT, 3, utc(2024, 5, 3))

        async with session_factory() as session:
            assert await store.archived_ids(session, EntityKind.REQUEST) == {2, 9}


class TestList:

    async def test_newest_first_with_pagination(self, session_factory, store):
        for day in range(1, 6):
            await _add(session_factory, EntityKind.REQUEST, day, utc(2024, 3, day))

        async with session_factory() as session:
            first = await store.list(
                session, EntityKind.REQUEST, ArchiveFilters(), page=1, page_size=2
            )
            last = await store.list(
                session, EntityKind.REQUEST, ArchiveFilters(), page=3, page_size=2
            )

        assert [r.entity_id for r in first.records] == [5, 4]
        assert first.total == 5
        assert first.pages == 3
        assert [r.entity_id for r in last.records] == [1]

    async def test_kind_none_lists_every_kind(self, session_factory, store):
        await _add(session_factory, EntityKind.REQUEST, 1, utc(2024, 3, 1))
        await _add(session_factory, EntityKind.ACCOUNT, 1, utc(2024, 3, 2),
                   snapshot={"id": 1, "name": "A", "email": "a@x", "role": "member"})

        async with session_factory() as session:
            page = await store.list(session, None, ArchiveFilters(), 1, 20)
        assert [r.entity_kind for r in page.records] == ["account", "request"]

    async def test_date_range_is_inclusive_by_day(self, session_factory, store):
        await _add(session_factory, EntityKind.REQUEST, 1, utc(2024, 3, 1, 23))
        await _add(session_factory, EntityKind.REQUEST, 2, utc(2024, 3, 2, 12))
        await _add(session_factory, EntityKind.REQUEST, 3, utc(2024, 3, 3, 0))

        filters = ArchiveFilters(
            archived_from=date(2024, 3, 2), archived_to=date(2024, 3, 2)
        )
        async with session_factory() as session:
            page = await store.list(session, EntityKind.REQUEST, filters, 1, 20)
        assert [r.entity_id for r in page.records] == [2]

    async def test_predicates_paginate_after_filtering(self, session_factory, store):
        for i in range(1, 5):
            title = "Harbour works" if i % 2 else "Road works"
            await _add(session_factory, EntityKind.REQUEST, i, utc(2024, 3, i),
                       snapshot={"id": i, "title": title})

        async with session_factory() as session:
            page = await store.list(
                session, EntityKind.REQUEST, ArchiveFilters(search="harbour"),
                page=1, page_size=1,
            )
        assert page.total == 2
        assert [r.entity_id for r in page.records] == [3]


def test_empty_page_has_no_pages():
    assert ArchivePage(total=0, page_size=20).pages == 0
    assert ArchivePage(total=21, page_size=20).pages == 2
