"""
Civitas — SQLAlchemy Models
============================
Relational schema of the municipal request tracker.

Entities: Organization, Account, Category, RetentionPolicy, Request,
Attachment, ArchiveRecord.

Design decisions:
- None of the entity tables carries an archived flag. Archived status is
  the presence of an ``ArchiveRecord`` row for (entity_kind, entity_id).
- ``archive_records`` has a UNIQUE (entity_kind, entity_id) constraint;
  it is the only guard against double archival.
- ArchiveRecord rows are immutable: inserted on archive, deleted on restore.
- All timestamps are UTC with timezone.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from civitas.archive.kinds import EntityKind
from civitas.core.clock import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
SnapshotJSON = JSON().with_variant(JSONB(), "postgresql")

ACCOUNT_ROLES: tuple[str, ...] = ("admin", "legal", "member")


class Base(DeclarativeBase):
    """Shared declarative base for all Civitas models."""
    pass


# ── Organization ────────────────────────────────────────────────────────

class Organization(Base):
    """A municipality submitting requests."""

    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    postal_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    population: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    members: Mapped[list["Account"]] = relationship(back_populates="organization")
    requests: Mapped[list["Request"]] = relationship(back_populates="organization")


# ── Account ─────────────────────────────────────────────────────────────

class Account(Base):
    """A user account: municipal member, legal officer or administrator."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    given_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="member")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    organization_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    organization: Mapped["Organization | None"] = relationship(
        back_populates="members"
    )

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'legal', 'member')", name="ck_accounts_role"
        ),
    )


# ── Category & Retention Policy ─────────────────────────────────────────

class Category(Base):
    """Request topic. Retention policies are attached per category."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    retention_policies: Mapped[list["RetentionPolicy"]] = relationship(
        back_populates="category",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RetentionPolicy.id",
    )


class RetentionPolicy(Base):
    """
    How long a resolved request of a category stays active.

    Several policies may exist for one category.
    """

    __tablename__ = "retention_policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    category: Mapped["Category"] = relationship(back_populates="retention_policies")

    __table_args__ = (
        CheckConstraint("duration_months > 0", name="ck_rp_duration_positive"),
        Index("ix_rp_category_id", "category_id"),
    )


# ── Request ─────────────────────────────────────────────────────────────

class Request(Base):
    """
    A question raised by a municipality and answered by a legal officer.

    ``answered_at`` is the completion timestamp the retention sweep uses.
    """

    __tablename__ = "requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    question: Mapped[str | None] = mapped_column(Text, nullable=True)
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    organization_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    requester_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    responder_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    asked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    answered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    organization: Mapped["Organization | None"] = relationship(
        back_populates="requests"
    )
    category: Mapped["Category | None"] = relationship()
    requester: Mapped["Account | None"] = relationship(foreign_keys=[requester_id])
    responder: Mapped["Account | None"] = relationship(foreign_keys=[responder_id])
    attachments: Mapped[list["Attachment"]] = relationship(
        back_populates="request", order_by="Attachment.id"
    )

    __table_args__ = (
        Index("ix_requests_answered_at", "answered_at"),
        Index("ix_requests_requester_id", "requester_id"),
        Index("ix_requests_responder_id", "responder_id"),
    )


class Attachment(Base):
    """File metadata; the bytes live in external storage."""

    __tablename__ = "attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str] = mapped_column(String(512), nullable=False)
    content_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    size_bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    request: Mapped["Request"] = relationship(back_populates="attachments")


# ── ArchiveRecord ───────────────────────────────────────────────────────

class ArchiveRecord(Base):
    """
    Assertion that one entity is archived. Sole source of archived status.

    Immutable: created on archive, deleted on restore, never updated.
    """

    __tablename__ = "archive_records"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    entity_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot: Mapped[dict] = mapped_column(SnapshotJSON, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    archived_by_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        comment="NULL when archived by the retention sweep",
    )
    archived_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    # Loaded explicitly by the store; implicit IO is not allowed under asyncio.
    archived_by: Mapped["Account | None"] = relationship(lazy="raise")

    __table_args__ = (
        UniqueConstraint(
            "entity_kind", "entity_id", name="uq_archive_records_kind_entity"
        ),
        CheckConstraint(
            "entity_kind IN ({})".format(
                ", ".join(f"'{kind.value}'" for kind in EntityKind)
            ),
            name="ck_archive_records_entity_kind",
        ),
        Index("ix_archive_records_archived_at", "archived_at"),
    )
