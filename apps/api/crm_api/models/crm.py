from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    Date,
    Enum,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from crm_api.models.base import Base, JSONDocument, UTCDateTime
from crm_api.models.enums import ActionItemStatus, TouchpointStatus


class Contact(Base):
    __tablename__ = "contacts"
    __table_args__ = (Index("contacts_primary_email_idx", "user_id", "primary_email"),)

    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    # Derived from the normalized primary email; see services.contacts.ids.
    contact_id: Mapped[str] = mapped_column(String(400), primary_key=True)

    primary_email: Mapped[str] = mapped_column(String(320), nullable=False)
    first_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_email_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    tags: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    lead_source: Mapped[str | None] = mapped_column(Text, nullable=True)
    segment: Mapped[str | None] = mapped_column(Text, nullable=True)
    engagement_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    next_touchpoint_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    next_touchpoint_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    touchpoint_status: Mapped[TouchpointStatus | None] = mapped_column(
        Enum(TouchpointStatus, name="touchpoint_status", native_enum=False, length=32),
        nullable=True,
    )
    touchpoint_status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    touchpoint_status_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_items: Mapped[list[str] | None] = mapped_column(JSONDocument, nullable=True)
    sentiment: Mapped[str | None] = mapped_column(Text, nullable=True)
    relationship_insights: Mapped[str | None] = mapped_column(Text, nullable=True)
    pain_points: Mapped[str | None] = mapped_column(Text, nullable=True)
    coaching_themes: Mapped[str | None] = mapped_column(Text, nullable=True)
    outreach_draft: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class Thread(Base):
    __tablename__ = "threads"
    __table_args__ = (Index("threads_contact_idx", "user_id", "contact_id"),)

    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    thread_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    contact_id: Mapped[str | None] = mapped_column(String(400), nullable=True)
    history_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Written by the out-of-band summarizer: summary, actionItems, painPoints, ...
    summary: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)
    needs_summary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    synced_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class ThreadMessage(Base):
    __tablename__ = "thread_messages"

    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    thread_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    message_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    from_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    to_addresses: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False, default=list)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    body_plain: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class ActionItem(Base):
    __tablename__ = "action_items"
    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id", "contact_id"],
            ["contacts.user_id", "contacts.contact_id"],
            ondelete="CASCADE",
        ),
        Index("action_items_contact_idx", "user_id", "contact_id"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    contact_id: Mapped[str] = mapped_column(String(400), nullable=False)

    text: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ActionItemStatus] = mapped_column(
        Enum(ActionItemStatus, name="action_item_status", native_enum=False, length=32),
        nullable=False,
        default=ActionItemStatus.pending,
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
