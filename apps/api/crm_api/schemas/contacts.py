from __future__ import annotations

from datetime import datetime

from pydantic import Field, StrictBool

from crm_api.models.enums import OverwriteMode, TouchpointStatus
from crm_api.schemas.common import CamelModel


class ContactOut(CamelModel):
    contact_id: str
    primary_email: str
    first_name: str | None
    last_name: str | None
    tags: list[str]
    notes: str | None
    lead_source: str | None
    segment: str | None
    engagement_score: int | None
    next_touchpoint_date: str | None
    next_touchpoint_message: str | None
    touchpoint_status: TouchpointStatus | None
    touchpoint_status_reason: str | None
    touchpoint_status_updated_at: datetime | None
    summary: str | None
    action_items: list[str] | None
    sentiment: str | None
    relationship_insights: str | None
    pain_points: str | None
    coaching_themes: str | None
    outreach_draft: str | None
    summary_updated_at: datetime | None
    last_email_date: datetime | None
    archived: bool
    created_at: datetime
    updated_at: datetime


class ContactFields(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    tags: list[str] | None = None
    notes: str | None = None
    lead_source: str | None = None
    segment: str | None = None
    engagement_score: int | None = Field(default=None, ge=0, le=100)
    next_touchpoint_date: str | None = Field(default=None, max_length=32)
    next_touchpoint_message: str | None = None
    summary: str | None = None
    action_items: list[str] | None = None
    sentiment: str | None = None
    relationship_insights: str | None = None
    pain_points: str | None = None
    coaching_themes: str | None = None
    outreach_draft: str | None = None


class ContactCreateRequest(ContactFields):
    primary_email: str = Field(min_length=3, max_length=320)


class ContactUpdateRequest(ContactFields):
    archived: bool | None = None


class BulkArchiveRequest(CamelModel):
    contact_ids: list[str] = Field(min_length=1, max_length=1000)
    archived: StrictBool


class BulkArchiveResponse(CamelModel):
    success: int
    errors: int
    error_details: list[str]


class TouchpointStatusRequest(CamelModel):
    status: TouchpointStatus | None
    reason: str | None = Field(default=None, max_length=2000)


class ContactImportRequest(CamelModel):
    rows: list[dict[str, str]] = Field(max_length=10000)
    overwrite_mode: OverwriteMode = OverwriteMode.skip


class ContactImportResponse(CamelModel):
    imported: int
    skipped: int
    errors: int
    total: int
    merged: int
    error_details: list[str]


class ContactImportPreviewRequest(CamelModel):
    rows: list[dict[str, str]] = Field(max_length=10000)


class ContactImportPreviewResponse(CamelModel):
    total: int
    existing: int
    new: int
    merged: int = 0
