"""Access token provider for linked Gmail accounts.

The ``google_accounts`` row is a token cache owned by this module: callers ask
for a bearer token and never read or write the row themselves.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from crm_api.core.config import get_settings
from crm_api.core.crypto import open_sealed, seal
from crm_api.core.logs import log_json, sync_logger
from crm_api.models.google import GoogleAccount
from crm_api.services.google.oauth import (
    GoogleClientCredentials,
    GoogleOAuthError,
    GoogleTokenResponse,
    refresh_access_token,
)


class GoogleAccountNotLinkedError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("No Gmail account linked.")


class ReauthorizationRequiredError(RuntimeError):
    """Refresh token rejected; the user has to reconnect Gmail. Never retried."""

    requires_reauth = True

    def __init__(self, message: str, *, code: str | None) -> None:
        super().__init__(message)
        self.code = code


class GoogleTokenRefreshError(RuntimeError):
    requires_reauth = False

    def __init__(self, message: str, *, code: str | None) -> None:
        super().__init__(message)
        self.code = code


def _sealing_context(user_id: str) -> str:
    return f"google_accounts:{user_id}"


def _load_account(session: Session, user_id: str) -> GoogleAccount | None:
    return session.get(GoogleAccount, user_id)


def get_access_token(
    *,
    session: Session,
    http_client: httpx.Client,
    user_id: str,
    now: datetime | None = None,
) -> str:
    account = _load_account(session, user_id)
    if account is None:
        raise GoogleAccountNotLinkedError()

    settings = get_settings()
    now = now or datetime.now(UTC)
    context = _sealing_context(user_id)
    skew = timedelta(seconds=settings.ACCESS_TOKEN_REFRESH_SKEW_SECONDS)

    if (
        account.encrypted_access_token
        and account.access_token_expires_at
        and account.access_token_expires_at > now + skew
    ):
        return open_sealed(account.encrypted_access_token, context=context)

    refresh_token = open_sealed(account.encrypted_refresh_token, context=context)
    try:
        token = refresh_access_token(
            http_client,
            GoogleClientCredentials.from_settings(settings),
            refresh_token=refresh_token,
        )
    except GoogleOAuthError as e:
        log_json(
            sync_logger,
            "gmail.token.refresh_failed",
            level=logging.WARNING,
            user_id=user_id,
            status_code=e.status_code,
            error_type=e.code,
        )
        raise _classify_refresh_error(e) from e

    account.encrypted_access_token = seal(token.access_token, context=context)
    account.access_token_expires_at = now + timedelta(seconds=max(1, token.expires_in))
    if token.refresh_token:
        account.encrypted_refresh_token = seal(token.refresh_token, context=context)
    account.updated_at = now
    session.add(account)
    session.flush()
    return token.access_token


def _classify_refresh_error(e: GoogleOAuthError) -> Exception:
    if e.code == "invalid_grant":
        description = e.description.lower()
        if "expired" in description or "revoked" in description:
            message = (
                "Gmail access token has expired or been revoked. "
                "Please reconnect your Gmail account."
            )
        else:
            message = "Gmail authentication failed. Please reconnect your Gmail account."
        return ReauthorizationRequiredError(message, code=e.code)
    return GoogleTokenRefreshError("Could not refresh access token.", code=e.code)


def link_google_account(
    *,
    session: Session,
    user_id: str,
    token: GoogleTokenResponse,
    now: datetime | None = None,
) -> GoogleAccount:
    if not token.refresh_token:
        raise ValueError("Refresh token missing")

    now = now or datetime.now(UTC)
    context = _sealing_context(user_id)
    account = _load_account(session, user_id)
    if account is None:
        account = GoogleAccount(user_id=user_id, encrypted_refresh_token=b"")
        session.add(account)

    account.encrypted_refresh_token = seal(token.refresh_token, context=context)
    account.encrypted_access_token = seal(token.access_token, context=context)
    account.access_token_expires_at = now + timedelta(seconds=max(1, token.expires_in))
    account.scope = token.scope
    account.updated_at = now
    session.flush()
    return account


def is_account_linked(session: Session, user_id: str) -> bool:
    return _load_account(session, user_id) is not None


def list_linked_user_ids(session: Session) -> list[str]:
    return list(
        session.execute(select(GoogleAccount.user_id).order_by(GoogleAccount.user_id.asc()))
        .scalars()
        .all()
    )
