from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from crm_api.core.config import get_settings
from crm_api.core.logs import log_json, sync_logger
from crm_api.models.sync import SyncJob


@dataclass(frozen=True)
class ClearSyncJobsResult:
    deleted: int
    errors: int
    batches: int
    message: str

    @property
    def success(self) -> bool:
        return self.errors == 0


def _newest_first(user_id: str):  # type: ignore[no-untyped-def]
    return (
        select(SyncJob)
        .where(SyncJob.user_id == user_id)
        .order_by(SyncJob.started_at.desc(), SyncJob.id.desc())
    )


def list_sync_jobs(*, session: Session, user_id: str, limit: int = 50) -> list[SyncJob]:
    return list(session.execute(_newest_first(user_id).limit(limit)).scalars().all())


def get_last_sync_job(*, session: Session, user_id: str) -> SyncJob | None:
    return session.execute(_newest_first(user_id).limit(1)).scalars().first()


def _delete_batch(session: Session, *, user_id: str, job_ids: list[UUID]) -> None:
    session.execute(
        delete(SyncJob).where(SyncJob.user_id == user_id, SyncJob.id.in_(job_ids))
    )
    session.commit()


def clear_sync_jobs(
    *,
    session: Session,
    user_id: str,
    batch_size: int | None = None,
) -> ClearSyncJobsResult:
    batch_size = batch_size or get_settings().SYNC_JOB_DELETE_BATCH_SIZE
    job_ids = list(
        session.execute(
            select(SyncJob.id)
            .where(SyncJob.user_id == user_id)
            .order_by(SyncJob.started_at.desc(), SyncJob.id.desc())
        )
        .scalars()
        .all()
    )

    if not job_ids:
        return ClearSyncJobsResult(deleted=0, errors=0, batches=0, message="No sync history to clear")

    # The most recent job is always kept.
    to_delete = job_ids[1:]
    if not to_delete:
        return ClearSyncJobsResult(
            deleted=0,
            errors=0,
            batches=0,
            message="Only one sync job exists, nothing to clear",
        )

    deleted = 0
    errors = 0
    batches = 0
    for start in range(0, len(to_delete), batch_size):
        chunk = to_delete[start : start + batch_size]
        batches += 1
        try:
            _delete_batch(session, user_id=user_id, job_ids=chunk)
        except DBAPIError as e:
            session.rollback()
            errors += len(chunk)
            log_json(
                sync_logger,
                "sync_jobs.clear.batch_failed",
                level=logging.ERROR,
                user_id=user_id,
                batch=batches,
                size=len(chunk),
                error=str(e.orig) if e.orig is not None else str(e),
            )
            continue
        deleted += len(chunk)

    if errors == 0:
        plural = "" if deleted == 1 else "s"
        message = f"Cleared {deleted} sync job{plural} from history"
    else:
        message = f"Cleared {deleted} sync jobs, {errors} failed to delete"
    return ClearSyncJobsResult(deleted=deleted, errors=errors, batches=batches, message=message)
