from __future__ import annotations

from datetime import UTC, datetime, timedelta

import httpx
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from crm_api.core.config import Settings, get_settings
from crm_api.core.security import new_random_token
from crm_api.models.auth import OAuthState
from crm_api.services.google.oauth import (
    GoogleClientCredentials,
    GoogleOAuthError,
    build_authorization_url,
    exchange_code_for_tokens,
)
from crm_api.services.google.tokens import link_google_account

GMAIL_OAUTH_PROVIDER = "google_gmail"
GMAIL_OAUTH_STATE_TTL = timedelta(minutes=10)


def gmail_callback_url(settings: Settings) -> str:
    return settings.GOOGLE_REDIRECT_URI or f"{settings.API_BASE_URL}/oauth/gmail/callback"


def _configured_credentials(settings: Settings) -> GoogleClientCredentials:
    credentials = GoogleClientCredentials.from_settings(settings)
    if not credentials.configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google OAuth is not configured",
        )
    return credentials


def start_gmail_oauth(*, session: Session, user_id: str) -> str:
    """Record a single-use state for ``user_id`` and return Google's consent URL."""
    settings = get_settings()
    credentials = _configured_credentials(settings)

    state = new_random_token()
    session.add(
        OAuthState(
            user_id=user_id,
            provider=GMAIL_OAUTH_PROVIDER,
            state=state,
            expires_at=datetime.now(UTC) + GMAIL_OAUTH_STATE_TTL,
        )
    )
    session.flush()

    return build_authorization_url(
        credentials,
        redirect_uri=gmail_callback_url(settings),
        scopes=settings.google_oauth_scopes,
        state=state,
    )


def _consume_state(session: Session, *, user_id: str, state: str, now: datetime) -> None:
    row = session.execute(
        select(OAuthState).where(OAuthState.provider == GMAIL_OAUTH_PROVIDER, OAuthState.state == state)
    ).scalar_one_or_none()

    problem: str | None = None
    if row is None or row.user_id != user_id:
        problem = "Invalid OAuth state"
    elif row.used_at is not None:
        problem = "OAuth state already used"
    elif row.expires_at <= now:
        problem = "OAuth state expired"
    if problem is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=problem)

    row.used_at = now
    session.flush()


def complete_gmail_oauth(
    *,
    session: Session,
    http_client: httpx.Client,
    user_id: str,
    state: str,
    code: str,
) -> None:
    settings = get_settings()
    credentials = _configured_credentials(settings)
    now = datetime.now(UTC)
    _consume_state(session, user_id=user_id, state=state, now=now)

    try:
        token = exchange_code_for_tokens(
            http_client,
            credentials,
            code=code,
            redirect_uri=gmail_callback_url(settings),
        )
    except GoogleOAuthError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Token exchange failed: {e}") from e

    try:
        link_google_account(session=session, user_id=user_id, token=token, now=now)
    except ValueError as e:
        # Google omits the refresh token when consent was not re-prompted.
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
