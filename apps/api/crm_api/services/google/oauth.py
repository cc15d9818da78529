"""Google OAuth 2.0 endpoints used to link a Gmail mailbox to a CRM user."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from crm_api.core.config import Settings

GOOGLE_OAUTH_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class GoogleClientCredentials:
    client_id: str
    client_secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> GoogleClientCredentials:
        return cls(client_id=settings.GOOGLE_CLIENT_ID, client_secret=settings.GOOGLE_CLIENT_SECRET)

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class GoogleTokenResponse:
    access_token: str
    expires_in: int
    refresh_token: str | None
    scope: str | None
    token_type: str | None


class GoogleOAuthError(RuntimeError):
    """The token endpoint answered without an access token."""

    def __init__(self, *, status_code: int, code: str | None, description: str) -> None:
        super().__init__(description or code or "Google token request failed")
        self.status_code = status_code
        self.code = code
        self.description = description


def build_authorization_url(
    credentials: GoogleClientCredentials,
    *,
    redirect_uri: str,
    scopes: list[str],
    state: str,
) -> str:
    # offline + consent so Google hands back a refresh token on every link, not just the first.
    query = urlencode(
        {
            "client_id": credentials.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
    )
    return f"{GOOGLE_OAUTH_AUTHORIZE_URL}?{query}"


def exchange_code_for_tokens(
    client: httpx.Client,
    credentials: GoogleClientCredentials,
    *,
    code: str,
    redirect_uri: str,
) -> GoogleTokenResponse:
    return _post_token_grant(
        client,
        credentials,
        grant_type="authorization_code",
        code=code,
        redirect_uri=redirect_uri,
    )


def refresh_access_token(
    client: httpx.Client,
    credentials: GoogleClientCredentials,
    *,
    refresh_token: str,
) -> GoogleTokenResponse:
    return _post_token_grant(client, credentials, grant_type="refresh_token", refresh_token=refresh_token)


def _post_token_grant(
    client: httpx.Client,
    credentials: GoogleClientCredentials,
    *,
    grant_type: str,
    **fields: str,
) -> GoogleTokenResponse:
    form = {
        "grant_type": grant_type,
        "client_id": credentials.client_id,
        "client_secret": credentials.client_secret,
        **fields,
    }
    res = client.post(GOOGLE_OAUTH_TOKEN_URL, data=form)

    try:
        body = res.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = {}

    if res.is_error or not body.get("access_token"):
        raise GoogleOAuthError(
            status_code=res.status_code,
            code=body.get("error"),
            description=body.get("error_description") or "",
        )

    return GoogleTokenResponse(
        access_token=body["access_token"],
        expires_in=int(body.get("expires_in") or 0),
        refresh_token=body.get("refresh_token"),
        scope=body.get("scope"),
        token_type=body.get("token_type"),
    )
