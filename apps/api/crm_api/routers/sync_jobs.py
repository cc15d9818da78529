from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from crm_api.core.deps import require_csrf_header, require_user
from crm_api.db.session import get_session
from crm_api.models.identity import User
from crm_api.schemas.sync import ClearSyncJobsResponse, SyncJobOut, SyncJobsResponse
from crm_api.services.sync_jobs import clear_sync_jobs, list_sync_jobs

router = APIRouter(prefix="/sync-jobs", tags=["sync"], dependencies=[Depends(require_csrf_header)])


@router.get("", response_model=SyncJobsResponse)
def sync_jobs_list(
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> SyncJobsResponse:
    jobs = list_sync_jobs(session=session, user_id=user.id, limit=limit)
    return SyncJobsResponse(items=[SyncJobOut.model_validate(j) for j in jobs])


@router.delete("/clear", response_model=ClearSyncJobsResponse)
def sync_jobs_clear(
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ClearSyncJobsResponse:
    result = clear_sync_jobs(session=session, user_id=user.id)
    return ClearSyncJobsResponse(
        success=result.success,
        deleted=result.deleted,
        errors=result.errors,
        message=result.message,
    )
