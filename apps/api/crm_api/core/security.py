from __future__ import annotations

import hashlib
import hmac
import secrets

from fastapi import Response

from crm_api.core.config import Settings, get_settings


def new_random_token(*, nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)


def session_token_digest(token: str) -> bytes:
    """Keyed digest stored in place of the raw session cookie value."""
    pepper = get_settings().JWT_SECRET.encode("utf-8")
    return hmac.digest(pepper, token.encode("utf-8"), hashlib.sha256)


def constant_time_equals(provided: str | None, expected: str) -> bool:
    # An unset secret never authenticates anyone.
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def _cookie(response: Response, settings: Settings, *, name: str, value: str, script_visible: bool) -> None:
    response.set_cookie(
        name,
        value,
        max_age=settings.SESSION_TTL_SECONDS,
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE,
        httponly=not script_visible,
        samesite=settings.COOKIE_SAMESITE,
    )


def set_csrf_cookie(response: Response, csrf_token: str) -> None:
    settings = get_settings()
    # The web client reads this cookie and echoes it in the CSRF header.
    _cookie(response, settings, name=settings.CSRF_COOKIE_NAME, value=csrf_token, script_visible=True)


def issue_auth_cookies(response: Response, *, session_token: str, csrf_token: str) -> None:
    settings = get_settings()
    _cookie(response, settings, name=settings.SESSION_COOKIE_NAME, value=session_token, script_visible=False)
    set_csrf_cookie(response, csrf_token)


def clear_auth_cookies(response: Response) -> None:
    settings = get_settings()
    for name in (settings.SESSION_COOKIE_NAME, settings.CSRF_COOKIE_NAME):
        response.delete_cookie(name, path="/", domain=settings.COOKIE_DOMAIN)
