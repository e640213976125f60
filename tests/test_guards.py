"""
Civitas — Access Guard Tests
=============================
Resource guard and own-account guard on a minimal application.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from civitas.api.deps import Principal, get_archive_service
from civitas.api.errors import register_exception_handlers
from civitas.api.guards import guard_resource, require_active_account
from civitas.archive.kinds import EntityKind
from civitas.archive.service import ArchiveService
from civitas.archive.store import ArchiveStore
from conftest import as_account


def _make_app(service) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.put(
        "/requests/{entity_id}",
        dependencies=[Depends(guard_resource(EntityKind.REQUEST))],
    )
    async def update_request(entity_id: int):
        return {"updated": entity_id}

    @app.get("/me")
    async def me(principal: Principal = Depends(require_active_account)):
        return {"account_id": principal.account_id}

    app.dependency_overrides[get_archive_service] = lambda: service
    return app


async def _call(service, method: str, path: str, headers=None):
    transport = ASGITransport(app=_make_app(service))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        return await ac.request(method, path, headers=headers)


# ── Resource guard ──────────────────────────────────────────────────────


class TestResourceGuard:

    async def test_active_resource_passes(self, archive_service, seed):
        resp = await _call(archive_service, "PUT", f"/requests/{seed.zoning_request_id}")
        assert resp.status_code == 200
        assert resp.json() == {"updated": seed.zoning_request_id}

    async def test_archived_resource_denied(self, archive_service, seed):
        await archive_service.archive(
            EntityKind.REQUEST, seed.zoning_request_id, actor_id=seed.legal_id
        )

        resp = await _call(archive_service, "PUT", f"/requests/{seed.zoning_request_id}")

        assert resp.status_code == 410
        error = resp.json()["error"]
        assert error["kind"] == "archived_access_denied"
        assert error["archived_by"] == seed.legal_id
        assert error["archived_at"] is not None

    async def test_other_kind_archived_does_not_block(self, archive_service, seed):
        # Same numeric id archived under another kind
        await archive_service.archive(EntityKind.ACCOUNT, seed.member_id)
        resp = await _call(archive_service, "PUT", f"/requests/{seed.member_id}")
        assert resp.status_code == 200

    async def test_ambiguous_status_lets_request_through(self, session_factory, seed):
        store = ArchiveStore()
        store.find = AsyncMock(side_effect=ConnectionError("db down"))
        service = ArchiveService(session_factory, store=store)

        resp = await _call(service, "PUT", f"/requests/{seed.zoning_request_id}")
        assert resp.status_code == 200


# ── Own-account guard ───────────────────────────────────────────────────


class TestSelfGuard:

    async def test_active_account_passes(self, archive_service, seed):
        resp = await _call(archive_service, "GET", "/me",
                           headers=as_account(seed.member_id, "member"))
        assert resp.status_code == 200
        assert resp.json() == {"account_id": seed.member_id}

    async def test_archived_account_denied(self, archive_service, seed):
        await archive_service.archive(EntityKind.ACCOUNT, seed.member_id)

        resp = await _call(archive_service, "GET", "/me",
                           headers=as_account(seed.member_id, "member"))

        assert resp.status_code == 410
        error = resp.json()["error"]
        assert error["message"] == "Your account is archived. Access denied."
        assert error["archived_at"] is not None

    async def test_status_check_failure_fails_open(self):
        service = MagicMock()
        service.check_status = AsyncMock(side_effect=RuntimeError("boom"))

        resp = await _call(service, "GET", "/me", headers=as_account(5, "legal"))
        assert resp.status_code == 200

    @pytest.mark.parametrize("headers", [
        None,
        {"X-Account-ID": "5"},
        {"X-Account-ID": "five", "X-Account-Role": "admin"},
    ])
    async def test_missing_identity(self, headers):
        service = MagicMock()
        service.check_status = AsyncMock()

        resp = await _call(service, "GET", "/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "AUTHENTICATION_REQUIRED"
        service.check_status.assert_not_awaited()
