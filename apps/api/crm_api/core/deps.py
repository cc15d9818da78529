from __future__ import annotations

from datetime import UTC, datetime

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from crm_api.core.config import get_settings
from crm_api.core.security import session_token_digest
from crm_api.db.session import get_session
from crm_api.models.auth import AuthSession
from crm_api.models.identity import User

CSRF_EXEMPT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

SessionUser = tuple[AuthSession, User]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def require_csrf_header(request: Request) -> None:
    """Double-submit check: the CSRF header must echo the CSRF cookie on unsafe methods."""
    if request.method in CSRF_EXEMPT_METHODS:
        return
    settings = get_settings()
    expected = request.cookies.get(settings.CSRF_COOKIE_NAME) or ""
    echoed = request.headers.get(settings.CSRF_HEADER_NAME) or ""
    if not expected or expected != echoed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="CSRF token missing or invalid")


def find_session_user(request: Request, session: Session) -> SessionUser | None:
    cookie = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    if not cookie:
        return None

    live = select(AuthSession).where(
        AuthSession.token_hash == session_token_digest(cookie),
        AuthSession.revoked_at.is_(None),
        AuthSession.expires_at > datetime.now(UTC),
    )
    auth_session = session.execute(live).scalar_one_or_none()
    if auth_session is None:
        return None

    user = session.get(User, auth_session.user_id)
    if user is None or user.is_disabled:
        return None
    return auth_session, user


def require_session(request: Request, session: Session = Depends(get_session)) -> SessionUser:
    if not request.cookies.get(get_settings().SESSION_COOKIE_NAME):
        raise _unauthorized("Not authenticated")
    found = find_session_user(request, session)
    if found is None:
        raise _unauthorized("Invalid session")
    return found


def require_user(found: SessionUser = Depends(require_session)) -> User:
    return found[1]
