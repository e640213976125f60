"""
Civitas — Snapshot Resolver
============================
Captures a self-contained copy of an entity at archival time.

Each ``EntityKind`` is bound to one typed snapshot schema and one resolver
that defines exactly which related records are embedded, so an archived
record stays readable without joining live tables:

- request      → category, organization, requester, responder, attachments
- organization → members (id/name/role), recent requests
- account      → owning organization, requests submitted and handled

Usage:
    resolver = SnapshotResolver()
    snapshot = await resolver.resolve(session, EntityKind.REQUEST, 12)
    payload = snapshot.model_dump(mode="json")
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from civitas.archive.kinds import EntityKind, parse_entity_kind
from civitas.core.config import get_settings
from civitas.core.exceptions import NotFoundError
from civitas.db.models import Account, Organization, Request


# ── Embedded references ─────────────────────────────────────────────────


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PersonRef(_Frozen):
    id: int
    name: str
    given_name: str | None = None
    email: str | None = None


class MemberRef(PersonRef):
    role: str


class CategoryRef(_Frozen):
    id: int
    name: str


class OrganizationRef(_Frozen):
    id: int | None = None
    name: str
    postal_code: str | None = None
    population: int | None = None


class AttachmentRef(_Frozen):
    id: int
    filename: str
    content_type: str | None = None
    size_bytes: int | None = None
    uploaded_at: datetime | None = None


class RequestSummary(_Frozen):
    id: int
    title: str
    asked_at: datetime | None = None
    category: str | None = None


# ── Snapshot schemas ────────────────────────────────────────────────────


class EntitySnapshot(_Frozen):
    """Common base of all snapshot schemas."""

    id: int

    def search_terms(self) -> list[str]:
        """Text fields matched by the archive list ``search`` filter."""
        return []


class RequestSnapshot(EntitySnapshot):
    title: str
    question: str | None = None
    answer: str | None = None
    asked_at: datetime | None = None
    answered_at: datetime | None = None
    category: CategoryRef | None = None
    organization: OrganizationRef | None = None
    requester: PersonRef | None = None
    responder: PersonRef | None = None
    attachments: list[AttachmentRef] = Field(default_factory=list)

    def search_terms(self) -> list[str]:
        return [self.title]


class OrganizationSnapshot(EntitySnapshot):
    name: str
    postal_code: str | None = None
    population: int | None = None
    created_at: datetime | None = None
    members: list[MemberRef] = Field(default_factory=list)
    recent_requests: list[RequestSummary] = Field(default_factory=list)

    def search_terms(self) -> list[str]:
        return [self.name]


class AccountSnapshot(EntitySnapshot):
    name: str
    given_name: str | None = None
    email: str
    role: str
    is_active: bool = True
    created_at: datetime | None = None
    organization: OrganizationRef | None = None
    requests_submitted: list[RequestSummary] = Field(default_factory=list)
    requests_handled: list[RequestSummary] = Field(default_factory=list)

    def search_terms(self) -> list[str]:
        return [t for t in (self.name, self.given_name, self.email) if t]


SNAPSHOT_MODELS: dict[EntityKind, type[EntitySnapshot]] = {
    EntityKind.REQUEST: RequestSnapshot,
    EntityKind.ORGANIZATION: OrganizationSnapshot,
    EntityKind.ACCOUNT: AccountSnapshot,
}


def parse_snapshot(kind: str | EntityKind, data: dict[str, Any]) -> EntitySnapshot:
    """Load a stored snapshot payload back into its typed schema."""
    return SNAPSHOT_MODELS[parse_entity_kind(kind)].model_validate(data)


# ── Helpers ─────────────────────────────────────────────────────────────


def _person(account: Account | None) -> PersonRef | None:
    if account is None:
        return None
    return PersonRef(
        id=account.id,
        name=account.name,
        given_name=account.given_name,
        email=account.email,
    )


def _summaries(requests: list[Request]) -> list[RequestSummary]:
    return [
        RequestSummary(
            id=r.id,
            title=r.title,
            asked_at=r.asked_at,
            category=r.category.name if r.category else None,
        )
        for r in requests
    ]


# ── Resolver ────────────────────────────────────────────────────────────

_Resolve = Callable[[AsyncSession, int], Awaitable[EntitySnapshot | None]]


class SnapshotResolver:
    """
    Resolves a typed snapshot for any supported entity kind.

    The kind → resolver table is closed; there is no registration hook.
    Related request lists are bounded by ``related_limit`` (newest first).
    """

    def __init__(self, related_limit: int | None = None) -> None:
        self._related_limit = related_limit or get_settings().snapshot_related_limit
        self._resolvers: dict[EntityKind, _Resolve] = {
            EntityKind.REQUEST: self._resolve_request,
            EntityKind.ORGANIZATION: self._resolve_organization,
            EntityKind.ACCOUNT: self._resolve_account,
        }

    async def resolve(
        self,
        session: AsyncSession,
        kind: str | EntityKind,
        entity_id: int,
    ) -> EntitySnapshot:
        """
        Capture the snapshot of (kind, entity_id).

        Raises:
            ValidationError: Unsupported kind.
            NotFoundError: The entity does not exist.
        """
        parsed = parse_entity_kind(kind)
        snapshot = await self._resolvers[parsed](session, entity_id)
        if snapshot is None:
            raise NotFoundError(
                f"{parsed.value} {entity_id} not found",
                entity_kind=parsed.value,
                entity_id=entity_id,
            )
        return snapshot

    # ── Per-kind resolvers ──────────────────────────────────────────────

    async def _resolve_request(
        self, session: AsyncSession, entity_id: int
    ) -> RequestSnapshot | None:
        stmt = (
            select(Request)
            .where(Request.id == entity_id)
            .options(
                selectinload(Request.category),
                selectinload(Request.organization),
                selectinload(Request.requester),
                selectinload(Request.responder),
                selectinload(Request.attachments),
            )
        )
        request = (await session.execute(stmt)).scalar_one_or_none()
        if request is None:
            return None

        org = request.organization
        return RequestSnapshot(
            id=request.id,
            title=request.title,
            question=request.question,
            answer=request.answer,
            asked_at=request.asked_at,
            answered_at=request.answered_at,
            category=(
                CategoryRef(id=request.category.id, name=request.category.name)
                if request.category else None
            ),
            organization=(
                OrganizationRef(
                    id=org.id,
                    name=org.name,
                    postal_code=org.postal_code,
                    population=org.population,
                )
                if org else None
            ),
            requester=_person(request.requester),
            responder=_person(request.responder),
            attachments=[
                AttachmentRef(
                    id=a.id,
                    filename=a.filename,
                    content_type=a.content_type,
                    size_bytes=a.size_bytes,
                    uploaded_at=a.uploaded_at,
                )
                for a in request.attachments
            ],
        )

    async def _resolve_organization(
        self, session: AsyncSession, entity_id: int
    ) -> OrganizationSnapshot | None:
        org = await session.get(Organization, entity_id)
        if org is None:
            return None

        members = (
            await session.execute(
                select(Account)
                .where(Account.organization_id == entity_id)
                .order_by(Account.id)
            )
        ).scalars().all()

        return OrganizationSnapshot(
            id=org.id,
            name=org.name,
            postal_code=org.postal_code,
            population=org.population,
            created_at=org.created_at,
            members=[
                MemberRef(
                    id=m.id,
                    name=m.name,
                    given_name=m.given_name,
                    email=m.email,
                    role=m.role,
                )
                for m in members
            ],
            recent_requests=await self._recent_requests(
                session, Request.organization_id == entity_id
            ),
        )

    async def _resolve_account(
        self, session: AsyncSession, entity_id: int
    ) -> AccountSnapshot | None:
        stmt = (
            select(Account)
            .where(Account.id == entity_id)
            .options(selectinload(Account.organization))
        )
        account = (await session.execute(stmt)).scalar_one_or_none()
        if account is None:
            return None

        org = account.organization
        return AccountSnapshot(
            id=account.id,
            name=account.name,
            given_name=account.given_name,
            email=account.email,
            role=account.role,
            is_active=account.is_active,
            created_at=account.created_at,
            organization=(
                OrganizationRef(name=org.name, postal_code=org.postal_code)
                if org else None
            ),
            requests_submitted=await self._recent_requests(
                session, Request.requester_id == entity_id
            ),
            requests_handled=await self._recent_requests(
                session, Request.responder_id == entity_id
            ),
        )

    async def _recent_requests(
        self, session: AsyncSession, criterion: Any
    ) -> list[RequestSummary]:
        rows = (
            await session.execute(
                select(Request)
                .where(criterion)
                .options(selectinload(Request.category))
                .order_by(Request.asked_at.desc(), Request.id.desc())
                .limit(self._related_limit)
            )
        ).scalars().all()
        return _summaries(list(rows))
