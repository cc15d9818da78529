"""initial crm schema

Revision ID: 0001_initial_crm_schema
Revises:
Create Date: 2026-10-01

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_initial_crm_schema"
down_revision = None
branch_labels = None
depends_on = None

JSON_DOC = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
NOW = sa.text("CURRENT_TIMESTAMP")


def _ts(name: str, *, nullable: bool = False, default: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=NOW if default else None,
    )


def _user_fk(*, primary_key: bool = False) -> sa.Column:
    return sa.Column(
        "user_id",
        sa.String(128),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=primary_key,
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("is_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )

    op.create_table(
        "auth_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk(),
        sa.Column("token_hash", sa.LargeBinary(), nullable=False, unique=True),
        _ts("created_at"),
        _ts("last_seen_at"),
        _ts("expires_at", default=False),
        _ts("revoked_at", nullable=True, default=False),
        sa.Column("revoked_reason", sa.Text(), nullable=True),
    )

    op.create_table(
        "oauth_states",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk(),
        sa.Column("provider", sa.Text(), nullable=False),
        sa.Column("state", sa.String(128), nullable=False, unique=True),
        _ts("created_at"),
        _ts("expires_at", default=False),
        _ts("used_at", nullable=True, default=False),
    )

    op.create_table(
        "google_accounts",
        _user_fk(primary_key=True),
        sa.Column("encrypted_refresh_token", sa.LargeBinary(), nullable=False),
        sa.Column("encrypted_access_token", sa.LargeBinary(), nullable=True),
        _ts("access_token_expires_at", nullable=True, default=False),
        sa.Column("scope", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "contacts",
        _user_fk(primary_key=True),
        sa.Column("contact_id", sa.String(400), primary_key=True),
        sa.Column("primary_email", sa.String(320), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        _ts("last_email_date", nullable=True, default=False),
        sa.Column("tags", JSON_DOC, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("lead_source", sa.Text(), nullable=True),
        sa.Column("segment", sa.Text(), nullable=True),
        sa.Column("engagement_score", sa.Integer(), nullable=True),
        sa.Column("next_touchpoint_date", sa.String(32), nullable=True),
        sa.Column("next_touchpoint_message", sa.Text(), nullable=True),
        sa.Column("touchpoint_status", sa.String(32), nullable=True),
        sa.Column("touchpoint_status_reason", sa.Text(), nullable=True),
        _ts("touchpoint_status_updated_at", nullable=True, default=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("action_items", JSON_DOC, nullable=True),
        sa.Column("sentiment", sa.Text(), nullable=True),
        sa.Column("relationship_insights", sa.Text(), nullable=True),
        sa.Column("pain_points", sa.Text(), nullable=True),
        sa.Column("coaching_themes", sa.Text(), nullable=True),
        sa.Column("outreach_draft", sa.Text(), nullable=True),
        _ts("summary_updated_at", nullable=True, default=False),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("contacts_primary_email_idx", "contacts", ["user_id", "primary_email"])

    op.create_table(
        "threads",
        _user_fk(primary_key=True),
        sa.Column("thread_id", sa.String(128), primary_key=True),
        sa.Column("contact_id", sa.String(400), nullable=True),
        sa.Column("history_id", sa.String(64), nullable=True),
        sa.Column("snippet", sa.Text(), nullable=True),
        _ts("last_message_at", nullable=True, default=False),
        sa.Column("summary", JSON_DOC, nullable=True),
        sa.Column("needs_summary", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("synced_at", nullable=True, default=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("threads_contact_idx", "threads", ["user_id", "contact_id"])

    op.create_table(
        "thread_messages",
        _user_fk(primary_key=True),
        sa.Column("thread_id", sa.String(128), primary_key=True),
        sa.Column("message_id", sa.String(128), primary_key=True),
        sa.Column("from_address", sa.Text(), nullable=False),
        sa.Column("to_addresses", JSON_DOC, nullable=False),
        sa.Column("subject", sa.Text(), nullable=True),
        _ts("sent_at", default=False),
        sa.Column("body_plain", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "sync_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk(),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'pending'")),
        _ts("started_at"),
        _ts("finished_at", nullable=True, default=False),
        sa.Column("processed_threads", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("processed_messages", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("sync_jobs_user_started_idx", "sync_jobs", ["user_id", "started_at"])

    op.create_table(
        "sync_settings",
        _user_fk(primary_key=True),
        sa.Column("last_sync_history_id", sa.String(64), nullable=True),
        _ts("last_sync_timestamp", nullable=True, default=False),
        _ts("updated_at"),
    )


def downgrade() -> None:
    op.drop_table("sync_settings")
    op.drop_index("sync_jobs_user_started_idx", table_name="sync_jobs")
    op.drop_table("sync_jobs")
    op.drop_table("thread_messages")
    op.drop_index("threads_contact_idx", table_name="threads")
    op.drop_table("threads")
    op.drop_index("contacts_primary_email_idx", table_name="contacts")
    op.drop_table("contacts")
    op.drop_table("google_accounts")
    op.drop_table("oauth_states")
    op.drop_table("auth_sessions")
    op.drop_table("users")
