from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from crm_api.core.config import get_settings
from crm_api.core.security import new_random_token, session_token_digest
from crm_api.models.auth import AuthSession
from crm_api.models.identity import User
from crm_api.services.contacts.ids import normalize_email


@dataclass(frozen=True)
class IssuedSession:
    token: str
    csrf_token: str
    record: AuthSession
    user: User


def _dev_user(session: Session, *, email: str, display_name: str | None) -> User:
    address = normalize_email(email)
    local, sep, domain = address.partition("@")
    if not (local and sep and domain) or any(ch.isspace() for ch in address):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="Invalid email")

    user = session.execute(select(User).where(User.email == address)).scalar_one_or_none()
    if user is None:
        user = User(id=uuid4().hex, email=address, display_name=display_name)
        session.add(user)
        session.flush()
    return user


def open_dev_session(*, session: Session, email: str, display_name: str | None = None) -> IssuedSession:
    """Sign in as ``email`` without a real identity provider (local and test only)."""
    settings = get_settings()
    if not settings.ALLOW_DEV_LOGIN:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    user = _dev_user(session, email=email, display_name=display_name)
    token = new_random_token()
    record = AuthSession(
        user_id=user.id,
        token_hash=session_token_digest(token),
        expires_at=datetime.now(UTC) + timedelta(seconds=settings.SESSION_TTL_SECONDS),
    )
    session.add(record)
    session.flush()
    return IssuedSession(token=token, csrf_token=new_random_token(), record=record, user=user)


def end_session(record: AuthSession, *, reason: str) -> None:
    record.revoked_at = datetime.now(UTC)
    record.revoked_reason = reason
