from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, String, Text, false, func
from sqlalchemy.orm import Mapped, mapped_column

from crm_api.models.base import Base, UTCDateTime


class User(Base):
    __tablename__ = "users"

    # Opaque id issued by the auth provider; every CRM table is scoped by it.
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
