from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from crm_api.core.config import get_settings
from crm_api.core.deps import find_session_user, require_csrf_header, require_user
from crm_api.core.http import get_http_client
from crm_api.core.security import constant_time_equals
from crm_api.db.session import get_session
from crm_api.models.enums import SyncJobType
from crm_api.models.identity import User
from crm_api.schemas.sync import (
    GmailOAuthCallbackResponse,
    GmailOAuthStartResponse,
    ScheduledSyncAllResponse,
    ScheduledSyncResponse,
    ScheduledSyncUserResult,
    SummarizeContactsResponse,
    SyncJobOut,
    SyncRunResponse,
    SyncStatusResponse,
)
from crm_api.services.contacts.aggregate import aggregate_all_contacts
from crm_api.services.gmail.jobs import SyncJobResult, run_sync_for_all_users, run_sync_job
from crm_api.services.gmail.sync import get_user_sync_settings
from crm_api.services.google.linking import complete_gmail_oauth, start_gmail_oauth
from crm_api.services.google.tokens import is_account_linked
from crm_api.services.sync_jobs import get_last_sync_job

router = APIRouter(tags=["gmail"])


def _failure_response(result: SyncJobResult) -> JSONResponse:
    body: dict[str, object] = {
        "ok": False,
        "error": result.error_message or "Sync failed. Please try again.",
        "syncJobId": str(result.sync_job_id),
        "requiresReauth": result.requires_reauth,
    }
    if result.requires_reauth:
        code = status.HTTP_401_UNAUTHORIZED
    elif result.quota_exceeded:
        body["quotaExceeded"] = True
        code = status.HTTP_429_TOO_MANY_REQUESTS
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=code, content=body)


@router.get("/oauth/gmail/start", response_model=GmailOAuthStartResponse)
def gmail_oauth_start(
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> GmailOAuthStartResponse:
    url = start_gmail_oauth(session=session, user_id=user.id)
    session.commit()
    return GmailOAuthStartResponse(authorization_url=url)


@router.get("/oauth/gmail/callback", response_model=GmailOAuthCallbackResponse)
def gmail_oauth_callback(
    state: str,
    response: Response,
    code: str | None = None,
    error: str | None = None,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
    http_client: httpx.Client = Depends(get_http_client),
) -> GmailOAuthCallbackResponse:
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"OAuth error: {error}")
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing OAuth code")

    complete_gmail_oauth(
        session=session,
        http_client=http_client,
        user_id=user.id,
        state=state,
        code=code,
    )
    session.commit()
    response.headers["Cache-Control"] = "no-store"
    return GmailOAuthCallbackResponse(status="connected")


@router.get("/gmail/sync", response_model=SyncRunResponse)
def gmail_sync(
    type: SyncJobType = Query(default=SyncJobType.auto),
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
    http_client: httpx.Client = Depends(get_http_client),
) -> SyncRunResponse | JSONResponse:
    result = run_sync_job(session=session, http_client=http_client, user_id=user.id, job_type=type)
    if not result.success:
        return _failure_response(result)
    return SyncRunResponse(
        ok=True,
        sync_job_id=result.sync_job_id,
        threads_processed=result.processed_threads,
        messages_processed=result.processed_messages,
        errors=result.errors,
    )


@router.post("/gmail/sync-scheduled", response_model=ScheduledSyncResponse | ScheduledSyncAllResponse)
def gmail_sync_scheduled(
    request: Request,
    user_id: str | None = Query(default=None, alias="userId"),
    session: Session = Depends(get_session),
    http_client: httpx.Client = Depends(get_http_client),
) -> ScheduledSyncResponse | ScheduledSyncAllResponse:
    if user_id:
        found = find_session_user(request, session)
        if found is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
        require_csrf_header(request)
        _auth_session, user = found
        if user.id != user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")

        result = run_sync_job(
            session=session,
            http_client=http_client,
            user_id=user.id,
            job_type=SyncJobType.auto,
        )
        return ScheduledSyncResponse(
            ok=result.success,
            sync_job_id=result.sync_job_id,
            processed_threads=result.processed_threads,
            processed_messages=result.processed_messages,
            error=result.error_message,
        )

    settings = get_settings()
    header = request.headers.get("authorization") or ""
    bearer = header[len("Bearer ") :] if header.startswith("Bearer ") else None
    if not constant_time_equals(bearer, settings.CRON_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - cron secret required",
        )

    results = run_sync_for_all_users(session=session, http_client=http_client)
    return ScheduledSyncAllResponse(
        ok=True,
        users_processed=len(results),
        results=[
            ScheduledSyncUserResult(
                user_id=uid,
                success=r.success,
                sync_job_id=r.sync_job_id,
                processed_threads=r.processed_threads,
                processed_messages=r.processed_messages,
            )
            for uid, r in results
        ],
    )


@router.get("/gmail/sync-status", response_model=SyncStatusResponse)
def gmail_sync_status(
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> SyncStatusResponse:
    settings = get_user_sync_settings(session, user_id=user.id)
    last_job = get_last_sync_job(session=session, user_id=user.id)
    return SyncStatusResponse(
        gmail_linked=is_account_linked(session, user.id),
        last_sync_history_id=settings.last_sync_history_id,
        last_sync_timestamp=settings.last_sync_timestamp,
        last_job=SyncJobOut.model_validate(last_job) if last_job is not None else None,
    )


@router.get("/gmail/summarize-contact", response_model=SummarizeContactsResponse)
def gmail_summarize_contacts(
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> SummarizeContactsResponse:
    updated = aggregate_all_contacts(session, user_id=user.id)
    session.commit()
    return SummarizeContactsResponse(ok=True, updated=updated)
