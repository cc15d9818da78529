from __future__ import annotations

from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs

import pytest
from sqlalchemy.orm import Session

from crm_api.models.google import GoogleAccount
from crm_api.services.google.tokens import (
    GoogleAccountNotLinkedError,
    GoogleTokenRefreshError,
    ReauthorizationRequiredError,
    get_access_token,
    is_account_linked,
)


def test_cached_access_token_is_returned_without_refresh(
    db_session: Session, make_user, link_gmail, fake_gmail
) -> None:
    user = make_user()
    link_gmail(user.id, access_token="cached-token", expires_in=3600)

    token = get_access_token(session=db_session, http_client=fake_gmail.http_client, user_id=user.id)
    assert token == "cached-token"
    assert fake_gmail.requests == []


def test_expiring_token_is_refreshed_and_persisted(
    db_session: Session, make_user, link_gmail, fake_gmail
) -> None:
    user = make_user()
    # Inside the refresh skew window.
    link_gmail(user.id, access_token="stale-token", expires_in=30)

    token = get_access_token(session=db_session, http_client=fake_gmail.http_client, user_id=user.id)
    assert token == "access-token-refreshed"
    db_session.commit()

    assert len(fake_gmail.requests) == 1
    form = parse_qs(fake_gmail.requests[0].content.decode("utf-8"))
    assert form["grant_type"] == ["refresh_token"]
    assert form["refresh_token"] == ["refresh-token-seeded"]

    account = db_session.get(GoogleAccount, user.id)
    assert account is not None
    assert account.access_token_expires_at > datetime.now(UTC) + timedelta(minutes=50)

    # Second call is served from the cache.
    again = get_access_token(session=db_session, http_client=fake_gmail.http_client, user_id=user.id)
    assert again == "access-token-refreshed"
    assert len(fake_gmail.requests) == 1


def test_revoked_refresh_token_requires_reauth(
    db_session: Session, make_user, link_gmail, fake_gmail
) -> None:
    user = make_user()
    link_gmail(user.id, expires_in=1)
    fake_gmail.token_status = 400
    fake_gmail.token_payload = {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}

    with pytest.raises(ReauthorizationRequiredError) as exc:
        get_access_token(session=db_session, http_client=fake_gmail.http_client, user_id=user.id)
    assert "reconnect" in str(exc.value)
    assert exc.value.requires_reauth is True


def test_other_refresh_failures_are_not_reauth(
    db_session: Session, make_user, link_gmail, fake_gmail
) -> None:
    user = make_user()
    link_gmail(user.id, expires_in=1)
    fake_gmail.token_status = 500
    fake_gmail.token_payload = {"error": "backend_error"}

    with pytest.raises(GoogleTokenRefreshError):
        get_access_token(session=db_session, http_client=fake_gmail.http_client, user_id=user.id)


def test_unlinked_user_has_no_token(db_session: Session, make_user, fake_gmail) -> None:
    user = make_user()
    assert is_account_linked(db_session, user.id) is False
    with pytest.raises(GoogleAccountNotLinkedError):
        get_access_token(session=db_session, http_client=fake_gmail.http_client, user_id=user.id)
