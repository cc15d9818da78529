from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Enum, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from crm_api.models.base import Base, UTCDateTime
from crm_api.models.enums import SyncJobStatus, SyncJobType


class SyncJob(Base):
    __tablename__ = "sync_jobs"
    __table_args__ = (Index("sync_jobs_user_started_idx", "user_id", "started_at"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[SyncJobType] = mapped_column(
        Enum(SyncJobType, name="sync_job_type", native_enum=False, length=32), nullable=False
    )
    status: Mapped[SyncJobStatus] = mapped_column(
        Enum(SyncJobStatus, name="sync_job_status", native_enum=False, length=32),
        nullable=False,
        server_default=text("'pending'"),
    )
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    processed_threads: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    processed_messages: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class SyncSettings(Base):
    __tablename__ = "sync_settings"

    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    # Gmail historyId; opaque to us except that it only grows.
    last_sync_history_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_sync_timestamp: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
