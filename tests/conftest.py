"""
Civitas — Test Fixtures
========================
Shared pytest fixtures.

Tests run against a file-backed SQLite database (aiosqlite) created from
the ORM metadata, one fresh database per test. A file rather than
``:memory:`` lets concurrent sessions see each other's writes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


# ── Override settings BEFORE any app import ──────────────────────────────
@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Ensure a fresh Settings instance for each test."""
    from civitas.core.config import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Return a settings instance with test defaults."""
    os.environ.setdefault("CIVITAS_ENVIRONMENT", "development")
    os.environ.setdefault("CIVITAS_LOG_LEVEL", "DEBUG")
    os.environ.setdefault("CIVITAS_LOG_FORMAT", "console")
    from civitas.core.config import get_settings
    return get_settings()


# ── Database ─────────────────────────────────────────────────────────────
@pytest.fixture
async def engine(tmp_path):
    from civitas.db.models import Base

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'civitas.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@dataclass
class SeedData:
    """Ids of the rows created by the ``seed`` fixture."""

    nuuk_id: int
    sisimiut_id: int
    admin_id: int
    legal_id: int
    member_id: int
    retired_admin_id: int
    urbanism_id: int
    culture_id: int
    environment_id: int
    urbanism_policy_id: int
    environment_standard_id: int
    environment_extended_id: int
    zoning_request_id: int
    festival_request_id: int
    open_request_id: int
    wetland_request_id: int


@pytest.fixture
async def seed(session_factory) -> SeedData:
    """
    A small municipal dataset.

    Categories: Urbanism (one 6-month policy), Culture (no policy),
    Environment (12-month policy created before a 36-month one).

    Requests:
      zoning   Urbanism, answered 2024-01-01, one attachment
      festival Culture, answered 2023-01-01
      open     Urbanism, not answered
      wetland  Environment, answered 2024-01-01
    """
    from civitas.db.models import (
        Account,
        Attachment,
        Category,
        Organization,
        Request,
        RetentionPolicy,
    )

    async with session_factory() as session:
        async with session.begin():
            nuuk = Organization(name="Nuuk", postal_code="3900", population=18000)
            sisimiut = Organization(name="Sisimiut", postal_code="3911", population=5500)
            session.add_all([nuuk, sisimiut])
            await session.flush()

            admin = Account(name="Berthelsen", given_name="Aqqalu",
                            email="aqqalu@civitas.test", role="admin")
            legal = Account(name="Olsen", given_name="Naja",
                            email="naja@civitas.test", role="legal")
            member = Account(name="Kleist", given_name="Pipaluk",
                             email="pipaluk@nuuk.test", role="member",
                             organization_id=nuuk.id)
            retired_admin = Account(name="Motzfeldt", given_name="Kuupik",
                                    email="kuupik@civitas.test", role="admin")
            session.add_all([admin, legal, member, retired_admin])

            urbanism = Category(name="Urbanism")
            culture = Category(name="Culture")
            environment = Category(name="Environment")
            session.add_all([urbanism, culture, environment])
            await session.flush()

            urbanism_policy = RetentionPolicy(
                category_id=urbanism.id, duration_months=6,
                description="Urban planning records",
            )
            env_standard = RetentionPolicy(
                category_id=environment.id, duration_months=12,
                description="Environment standard",
            )
            session.add_all([urbanism_policy, env_standard])
            await session.flush()
            env_extended = RetentionPolicy(
                category_id=environment.id, duration_months=36,
                description="Environment extended",
            )
            session.add(env_extended)

            zoning = Request(
                title="Zoning of the harbour district",
                question="May the harbour plot be rezoned?",
                answer="Yes, after public consultation.",
                organization_id=nuuk.id, category_id=urbanism.id,
                requester_id=member.id, responder_id=legal.id,
                asked_at=utc(2023, 11, 2), answered_at=utc(2024, 1, 1),
            )
            festival = Request(
                title="Winter festival permit",
                organization_id=sisimiut.id, category_id=culture.id,
                requester_id=member.id, responder_id=legal.id,
                asked_at=utc(2022, 12, 1), answered_at=utc(2023, 1, 1),
            )
            open_request = Request(
                title="Snow clearing contract",
                organization_id=nuuk.id, category_id=urbanism.id,
                requester_id=member.id,
                asked_at=utc(2024, 3, 1),
            )
            wetland = Request(
                title="Wetland protection perimeter",
                organization_id=nuuk.id, category_id=environment.id,
                requester_id=member.id, responder_id=legal.id,
                asked_at=utc(2023, 10, 1), answered_at=utc(2024, 1, 1),
            )
            session.add_all([zoning, festival, open_request, wetland])
            await session.flush()

            session.add(Attachment(
                request_id=zoning.id, filename="harbour-plan.pdf",
                content_type="application/pdf", size_bytes=48213,
                storage_path="requests/harbour-plan.pdf",
            ))
            await session.flush()

            return SeedData(
                nuuk_id=nuuk.id,
                sisimiut_id=sisimiut.id,
                admin_id=admin.id,
                legal_id=legal.id,
                member_id=member.id,
                retired_admin_id=retired_admin.id,
                urbanism_id=urbanism.id,
                culture_id=culture.id,
                environment_id=environment.id,
                urbanism_policy_id=urbanism_policy.id,
                environment_standard_id=env_standard.id,
                environment_extended_id=env_extended.id,
                zoning_request_id=zoning.id,
                festival_request_id=festival.id,
                open_request_id=open_request.id,
                wetland_request_id=wetland.id,
            )


# ── Services ─────────────────────────────────────────────────────────────
@pytest.fixture
def archive_service(session_factory):
    from civitas.archive.service import ArchiveService
    from civitas.archive.snapshots import SnapshotResolver
    return ArchiveService(session_factory, resolver=SnapshotResolver(related_limit=5))


@pytest.fixture
def policy_engine(session_factory):
    from civitas.retention.policies import RetentionPolicyEngine
    return RetentionPolicyEngine(session_factory)


@pytest.fixture
def sweeper(session_factory, archive_service, policy_engine):
    from civitas.retention.sweep import RetentionSweeper
    return RetentionSweeper(session_factory, archive_service, policy_engine)


@pytest.fixture
def scheduler(sweeper):
    from civitas.retention.scheduler import RetentionScheduler
    return RetentionScheduler(sweeper)


# ── HTTP client ──────────────────────────────────────────────────────────
@pytest.fixture
async def client(engine, session_factory, archive_service, policy_engine, scheduler):
    """
    AsyncClient wired to the FastAPI app over the test database.

    Patches init_db/close_db so the lifespan doesn't attempt a real
    PostgreSQL connection, and registers the test services directly.
    """
    import civitas.db.session as sess_mod
    from civitas.api import deps

    sess_mod._engine = engine
    sess_mod._session_factory = session_factory
    deps.configure_services(archive_service, policy_engine, scheduler)

    with (
        patch.object(sess_mod, "init_db", new_callable=AsyncMock, return_value=engine),
        patch.object(sess_mod, "close_db", new_callable=AsyncMock),
    ):
        from civitas.main import create_app
        app = create_app()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

    deps.reset_services()
    sess_mod._engine = None
    sess_mod._session_factory = None


def as_account(account_id: int, role: str) -> dict[str, str]:
    """Identity headers forwarded by the upstream authentication layer."""
    return {"X-Account-ID": str(account_id), "X-Account-Role": role}
