"""action items

Revision ID: 0002_action_items
Revises: 0001_initial_crm_schema
Create Date: 2026-10-15

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0002_action_items"
down_revision = "0001_initial_crm_schema"
branch_labels = None
depends_on = None

NOW = sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    op.create_table(
        "action_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(128),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("contact_id", sa.String(400), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(
            ["user_id", "contact_id"],
            ["contacts.user_id", "contacts.contact_id"],
            ondelete="CASCADE",
        ),
    )
    op.create_index("action_items_contact_idx", "action_items", ["user_id", "contact_id"])


def downgrade() -> None:
    op.drop_index("action_items_contact_idx", table_name="action_items")
    op.drop_table("action_items")
