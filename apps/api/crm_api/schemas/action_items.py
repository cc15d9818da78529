from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import Field

from crm_api.models.enums import ActionItemStatus
from crm_api.schemas.common import CamelModel


class ActionItemOut(CamelModel):
    id: UUID
    contact_id: str
    text: str
    status: ActionItemStatus
    due_date: date | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ActionItemCreateRequest(CamelModel):
    text: str = Field(min_length=1, max_length=2000)
    due_date: date | None = None


class ActionItemUpdateRequest(CamelModel):
    text: str | None = Field(default=None, min_length=1, max_length=2000)
    status: ActionItemStatus | None = None
    due_date: date | None = None


class ActionItemTextImportRequest(CamelModel):
    text: str = Field(max_length=100_000)


class ActionItemTextImportResponse(CamelModel):
    created_count: int
    action_items: list[ActionItemOut]
