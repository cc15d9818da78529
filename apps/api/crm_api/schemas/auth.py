from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# Session endpoints keep snake_case; they predate the camelCase CRM payloads.


class CsrfTokenResponse(BaseModel):
    csrf_token: str


class DevLoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    display_name: str | None = Field(default=None, max_length=200)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    display_name: str | None = None
    created_at: datetime | None = None


class SessionInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    expires_at: datetime


class LoginResponse(BaseModel):
    user: UserOut
    session: SessionInfo
    csrf_token: str


class MeResponse(BaseModel):
    user: UserOut
    gmail_linked: bool
