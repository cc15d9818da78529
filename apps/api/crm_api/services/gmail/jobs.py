from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from crm_api.core.logs import log_json, sync_logger
from crm_api.core.metrics import observe_sync_job
from crm_api.db.errors import is_resource_exhausted
from crm_api.models.enums import SyncJobStatus, SyncJobType
from crm_api.models.sync import SyncJob
from crm_api.services.gmail.sync import (
    SyncResult,
    get_user_sync_settings,
    perform_full_sync,
    perform_incremental_sync,
    should_do_incremental_sync,
    update_user_sync_settings,
)
from crm_api.services.google.gmail import GmailHistoryExpiredError
from crm_api.services.google.tokens import (
    GoogleAccountNotLinkedError,
    ReauthorizationRequiredError,
    get_access_token,
    list_linked_user_ids,
)

MODE_FULL = "full"
MODE_INCREMENTAL = "incremental"


@dataclass
class SyncJobResult:
    success: bool
    sync_job_id: UUID
    processed_threads: int = 0
    processed_messages: int = 0
    errors: list[str] = field(default_factory=list)
    error_message: str | None = None
    requires_reauth: bool = False
    quota_exceeded: bool = False


def choose_sync_mode(
    job_type: SyncJobType,
    *,
    last_history_id: str | None,
    last_sync_timestamp: datetime | None,
    now: datetime | None = None,
) -> str:
    if job_type == SyncJobType.initial or not last_history_id:
        return MODE_FULL
    if job_type == SyncJobType.incremental:
        return MODE_INCREMENTAL
    if should_do_incremental_sync(last_sync_timestamp, now=now):
        return MODE_INCREMENTAL
    return MODE_FULL


def _create_job(session: Session, *, user_id: str, job_type: SyncJobType) -> SyncJob:
    job = SyncJob(
        user_id=user_id,
        type=job_type,
        status=SyncJobStatus.running,
        started_at=datetime.now(UTC),
    )
    session.add(job)
    session.commit()
    return job


def run_sync_job(
    *,
    session: Session,
    http_client: httpx.Client,
    user_id: str,
    job_type: SyncJobType = SyncJobType.auto,
) -> SyncJobResult:
    job = _create_job(session, user_id=user_id, job_type=job_type)
    job_id = job.id
    started = time.perf_counter()
    mode: str | None = None
    log_json(sync_logger, "sync.job.started", user_id=user_id, sync_job_id=job_id, job_type=job_type)

    try:
        access_token = get_access_token(session=session, http_client=http_client, user_id=user_id)
        # Keep a refreshed token even if the sync pass below fails.
        session.commit()

        settings = get_user_sync_settings(session, user_id=user_id)
        mode = choose_sync_mode(
            job_type,
            last_history_id=settings.last_sync_history_id,
            last_sync_timestamp=settings.last_sync_timestamp,
        )

        result: SyncResult
        if mode == MODE_INCREMENTAL:
            try:
                result = perform_incremental_sync(
                    session=session,
                    http_client=http_client,
                    user_id=user_id,
                    access_token=access_token,
                    last_history_id=settings.last_sync_history_id or "",
                )
            except GmailHistoryExpiredError:
                log_json(
                    sync_logger,
                    "sync.job.history_expired",
                    level=logging.WARNING,
                    user_id=user_id,
                    sync_job_id=job_id,
                )
                mode = MODE_FULL
                result = perform_full_sync(
                    session=session,
                    http_client=http_client,
                    user_id=user_id,
                    access_token=access_token,
                )
        else:
            result = perform_full_sync(
                session=session,
                http_client=http_client,
                user_id=user_id,
                access_token=access_token,
            )

        now = datetime.now(UTC)
        update_user_sync_settings(
            session,
            user_id=user_id,
            history_id=result.new_history_id or settings.last_sync_history_id,
            timestamp=now,
        )

        job.status = SyncJobStatus.complete
        job.finished_at = now
        job.processed_threads = result.processed_threads
        job.processed_messages = result.processed_messages
        session.add(job)
        session.commit()
    except Exception as e:  # noqa: BLE001
        session.rollback()
        return _fail_job(
            session,
            job_id=job_id,
            user_id=user_id,
            job_type=job_type,
            mode=mode,
            exc=e,
            started=started,
        )

    errors = result.error_strings()
    log_json(
        sync_logger,
        "sync.job.completed",
        user_id=user_id,
        sync_job_id=job_id,
        job_type=job_type,
        mode=mode,
        processed_threads=result.processed_threads,
        processed_messages=result.processed_messages,
        item_errors=len(errors),
        duration_ms=int((time.perf_counter() - started) * 1000),
    )
    observe_sync_job(
        job_type=job_type,
        status=SyncJobStatus.complete,
        mode=mode,
        processed_messages=result.processed_messages,
    )
    return SyncJobResult(
        success=True,
        sync_job_id=job_id,
        processed_threads=result.processed_threads,
        processed_messages=result.processed_messages,
        errors=errors,
    )


def _fail_job(
    session: Session,
    *,
    job_id: UUID,
    user_id: str,
    job_type: SyncJobType,
    mode: str | None,
    exc: Exception,
    started: float,
) -> SyncJobResult:
    message = str(exc) or exc.__class__.__name__
    requires_reauth = isinstance(exc, (ReauthorizationRequiredError, GoogleAccountNotLinkedError))
    quota_exceeded = is_resource_exhausted(exc)

    log_json(
        sync_logger,
        "sync.job.failed",
        level=logging.ERROR,
        user_id=user_id,
        sync_job_id=job_id,
        job_type=job_type,
        mode=mode,
        error_type=exc.__class__.__name__,
        error=message,
        requires_reauth=requires_reauth,
        duration_ms=int((time.perf_counter() - started) * 1000),
    )
    observe_sync_job(job_type=job_type, status=SyncJobStatus.error, mode=mode, processed_messages=0)

    job = session.get(SyncJob, job_id)
    if job is not None:
        job.status = SyncJobStatus.error
        job.finished_at = datetime.now(UTC)
        job.error_message = message
        session.add(job)
        session.commit()

    return SyncJobResult(
        success=False,
        sync_job_id=job_id,
        error_message=message,
        requires_reauth=requires_reauth,
        quota_exceeded=quota_exceeded,
    )


def run_sync_for_all_users(
    *,
    session: Session,
    http_client: httpx.Client,
) -> list[tuple[str, SyncJobResult]]:
    results: list[tuple[str, SyncJobResult]] = []
    for user_id in list_linked_user_ids(session):
        results.append(
            (
                user_id,
                run_sync_job(
                    session=session,
                    http_client=http_client,
                    user_id=user_id,
                    job_type=SyncJobType.auto,
                ),
            )
        )
    return results
