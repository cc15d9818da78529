from __future__ import annotations

from datetime import datetime
from uuid import UUID

from crm_api.models.enums import SyncJobStatus, SyncJobType
from crm_api.schemas.common import CamelModel


class SyncRunResponse(CamelModel):
    ok: bool
    sync_job_id: UUID
    threads_processed: int
    messages_processed: int
    errors: list[str]


class ScheduledSyncResponse(CamelModel):
    ok: bool
    sync_job_id: UUID
    processed_threads: int
    processed_messages: int
    error: str | None


class ScheduledSyncUserResult(CamelModel):
    user_id: str
    success: bool
    sync_job_id: UUID
    processed_threads: int
    processed_messages: int


class ScheduledSyncAllResponse(CamelModel):
    ok: bool
    users_processed: int
    results: list[ScheduledSyncUserResult]


class SyncJobOut(CamelModel):
    id: UUID
    type: SyncJobType
    status: SyncJobStatus
    started_at: datetime
    finished_at: datetime | None
    processed_threads: int
    processed_messages: int
    error_message: str | None


class SyncJobsResponse(CamelModel):
    items: list[SyncJobOut]


class ClearSyncJobsResponse(CamelModel):
    success: bool
    deleted: int
    errors: int
    message: str


class SyncStatusResponse(CamelModel):
    gmail_linked: bool
    last_sync_history_id: str | None
    last_sync_timestamp: datetime | None
    last_job: SyncJobOut | None


class SummarizeContactsResponse(CamelModel):
    ok: bool
    updated: int


class GmailOAuthStartResponse(CamelModel):
    authorization_url: str


class GmailOAuthCallbackResponse(CamelModel):
    status: str
