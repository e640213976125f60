"""Initial schema - Municipal entities, retention policies, archive records

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Organizations ────────────────────────────────────────────────
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("postal_code", sa.String(16), nullable=True),
        sa.Column("population", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
    )

    # ── Accounts ─────────────────────────────────────────────────────
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("given_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("role", sa.String(32), nullable=False,
                  server_default="member"),
        sa.Column("is_active", sa.Boolean, nullable=False,
                  server_default=sa.text("true")),
        sa.Column("organization_id", sa.Integer,
                  sa.ForeignKey("organizations.id", ondelete="SET NULL"),
                  nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
        sa.CheckConstraint("role IN ('admin', 'legal', 'member')",
                           name="ck_accounts_role"),
    )

    # ── Categories & retention policies ──────────────────────────────
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
    )

    op.create_table(
        "retention_policies",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("category_id", sa.Integer,
                  sa.ForeignKey("categories.id", ondelete="CASCADE"),
                  nullable=False),
        sa.Column("duration_months", sa.Integer, nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
        sa.CheckConstraint("duration_months > 0",
                           name="ck_rp_duration_positive"),
    )
    op.create_index("ix_rp_category_id", "retention_policies", ["category_id"])

    # ── Requests & attachments ───────────────────────────────────────
    op.create_table(
        "requests",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("question", sa.Text, nullable=True),
        sa.Column("answer", sa.Text, nullable=True),
        sa.Column("organization_id", sa.Integer,
                  sa.ForeignKey("organizations.id", ondelete="SET NULL"),
                  nullable=True),
        sa.Column("category_id", sa.Integer,
                  sa.ForeignKey("categories.id", ondelete="SET NULL"),
                  nullable=True),
        sa.Column("requester_id", sa.Integer,
                  sa.ForeignKey("accounts.id", ondelete="SET NULL"),
                  nullable=True),
        sa.Column("responder_id", sa.Integer,
                  sa.ForeignKey("accounts.id", ondelete="SET NULL"),
                  nullable=True),
        sa.Column("asked_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
        sa.Column("answered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_requests_answered_at", "requests", ["answered_at"])
    op.create_index("ix_requests_requester_id", "requests", ["requester_id"])
    op.create_index("ix_requests_responder_id", "requests", ["responder_id"])

    op.create_table(
        "attachments",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("request_id", sa.Integer,
                  sa.ForeignKey("requests.id", ondelete="CASCADE"),
                  nullable=False),
        sa.Column("filename", sa.String(512), nullable=False),
        sa.Column("content_type", sa.String(128), nullable=True),
        sa.Column("size_bytes", sa.Integer, nullable=True),
        sa.Column("storage_path", sa.Text, nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
    )

    # ── Archive records ──────────────────────────────────────────────
    op.create_table(
        "archive_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("entity_kind", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=False),
        sa.Column("snapshot", postgresql.JSONB, nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("archived_by_id", sa.Integer,
                  sa.ForeignKey("accounts.id", ondelete="SET NULL"),
                  nullable=True,
                  comment="NULL when archived by the retention sweep"),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
        sa.UniqueConstraint("entity_kind", "entity_id",
                            name="uq_archive_records_kind_entity"),
        sa.CheckConstraint(
            "entity_kind IN ('request', 'organization', 'account')",
            name="ck_archive_records_entity_kind",
        ),
    )
    op.create_index("ix_archive_records_archived_at", "archive_records",
                    ["archived_at"])


def downgrade() -> None:
    op.drop_index("ix_archive_records_archived_at", table_name="archive_records")
    op.drop_table("archive_records")
    op.drop_table("attachments")
    op.drop_index("ix_requests_responder_id", table_name="requests")
    op.drop_index("ix_requests_requester_id", table_name="requests")
    op.drop_index("ix_requests_answered_at", table_name="requests")
    op.drop_table("requests")
    op.drop_index("ix_rp_category_id", table_name="retention_policies")
    op.drop_table("retention_policies")
    op.drop_table("categories")
    op.drop_table("accounts")
    op.drop_table("organizations")
