from __future__ import annotations

import uuid
from collections.abc import Generator
from urllib.parse import parse_qs, urlsplit

import httpx
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from crm_api.core.http import get_http_client
from crm_api.main import create_app
from crm_api.models.crm import Thread
from crm_api.models.enums import SyncJobStatus
from crm_api.models.sync import SyncJob
from crm_api.services.gmail import jobs

CRON_SECRET = "test-cron-secret"


def _get_csrf(client: TestClient) -> str:
    res = client.get("/auth/csrf")
    assert res.status_code == 200
    return res.json()["csrf_token"]


def _dev_login(client: TestClient) -> dict:
    csrf = _get_csrf(client)
    res = client.post(
        "/auth/dev/login",
        json={"email": f"sync-{uuid.uuid4().hex[:8]}@crm.test"},
        headers={"x-csrf-token": csrf},
    )
    assert res.status_code == 200
    return res.json()


def _client_with_gmail(http_client: httpx.Client) -> TestClient:
    app = create_app()

    def override_http_client() -> Generator[httpx.Client, None, None]:
        yield http_client

    app.dependency_overrides[get_http_client] = override_http_client
    return TestClient(app)


def test_sync_without_linked_account_requires_reauth(fake_gmail) -> None:
    client = _client_with_gmail(fake_gmail.http_client)
    _dev_login(client)

    res = client.get("/gmail/sync")
    assert res.status_code == 401
    body = res.json()
    assert body["ok"] is False
    assert body["requiresReauth"] is True
    assert body["error"] == "No Gmail account linked."
    assert body["syncJobId"]


def test_sync_runs_and_reports_status(db_session: Session, link_gmail, fake_gmail) -> None:
    client = _client_with_gmail(fake_gmail.http_client)
    login = _dev_login(client)
    user_id = login["user"]["id"]
    link_gmail(user_id)
    fake_gmail.add_message(message_id="m1", thread_id="t1", sender="a@example.com", history_id="500")

    res = client.get("/gmail/sync", params={"type": "initial"})
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["threadsProcessed"] == 1
    assert body["messagesProcessed"] == 1
    assert body["errors"] == []

    assert db_session.get(Thread, (user_id, "t1")) is not None

    status = client.get("/gmail/sync-status").json()
    assert status["gmailLinked"] is True
    assert status["lastSyncHistoryId"] == "500"
    assert status["lastJob"]["status"] == "complete"
    assert status["lastJob"]["type"] == "initial"

    jobs = client.get("/sync-jobs").json()["items"]
    assert len(jobs) == 1
    assert jobs[0]["id"] == body["syncJobId"]


def test_scheduled_sync_for_all_users_needs_cron_secret(fake_gmail) -> None:
    client = _client_with_gmail(fake_gmail.http_client)

    res = client.post("/gmail/sync-scheduled")
    assert res.status_code == 401
    assert res.json()["detail"] == "Unauthorized - cron secret required"

    wrong = client.post("/gmail/sync-scheduled", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401

    ok = client.post("/gmail/sync-scheduled", headers={"Authorization": f"Bearer {CRON_SECRET}"})
    assert ok.status_code == 200
    assert ok.json()["ok"] is True
    assert ok.json()["usersProcessed"] == len(ok.json()["results"])


def test_scheduled_sync_for_one_user_checks_identity(link_gmail, fake_gmail) -> None:
    client = _client_with_gmail(fake_gmail.http_client)
    login = _dev_login(client)
    user_id = login["user"]["id"]
    headers = {"x-csrf-token": login["csrf_token"]}

    mismatch = client.post("/gmail/sync-scheduled", params={"userId": "someone-else"}, headers=headers)
    assert mismatch.status_code == 403
    assert mismatch.json()["detail"] == "Unauthorized"

    no_csrf = client.post("/gmail/sync-scheduled", params={"userId": user_id})
    assert no_csrf.status_code == 403

    link_gmail(user_id)
    res = client.post("/gmail/sync-scheduled", params={"userId": user_id}, headers=headers)
    assert res.status_code == 200
    assert res.json()["ok"] is True
    assert res.json()["error"] is None


def test_scheduled_sync_for_one_user_requires_session(fake_gmail) -> None:
    client = _client_with_gmail(fake_gmail.http_client)
    res = client.post("/gmail/sync-scheduled", params={"userId": "anyone"})
    assert res.status_code == 401


def test_gmail_oauth_links_account(fake_gmail) -> None:
    client = _client_with_gmail(fake_gmail.http_client)
    _dev_login(client)
    assert client.get("/me").json()["gmail_linked"] is False

    fake_gmail.token_payload = {
        "access_token": "access-token-linked",
        "expires_in": 3600,
        "refresh_token": "refresh-token-linked",
        "scope": "https://www.googleapis.com/auth/gmail.readonly",
        "token_type": "Bearer",
    }

    start = client.get("/oauth/gmail/start")
    assert start.status_code == 200
    query = parse_qs(urlsplit(start.json()["authorizationUrl"]).query)
    assert query["access_type"] == ["offline"]
    assert query["redirect_uri"] == ["http://localhost:8000/oauth/gmail/callback"]
    state = query["state"][0]

    callback = client.get("/oauth/gmail/callback", params={"state": state, "code": "auth-code"})
    assert callback.status_code == 200
    assert callback.json() == {"status": "connected"}
    assert client.get("/me").json()["gmail_linked"] is True

    replay = client.get("/oauth/gmail/callback", params={"state": state, "code": "auth-code"})
    assert replay.status_code == 400


def test_gmail_oauth_rejects_unknown_state(fake_gmail) -> None:
    client = _client_with_gmail(fake_gmail.http_client)
    _dev_login(client)
    res = client.get("/oauth/gmail/callback", params={"state": "bogus", "code": "auth-code"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid OAuth state"


def test_summarize_contacts_route(fake_gmail) -> None:
    client = _client_with_gmail(fake_gmail.http_client)
    _dev_login(client)
    res = client.get("/gmail/summarize-contact")
    assert res.status_code == 200
    assert res.json() == {"ok": True, "updated": 0}


class _InsufficientResources(Exception):
    sqlstate = "53100"


def test_sync_reports_store_quota_as_429(db_session: Session, link_gmail, fake_gmail, monkeypatch) -> None:
    client = _client_with_gmail(fake_gmail.http_client)
    user_id = _dev_login(client)["user"]["id"]
    link_gmail(user_id)

    def disk_full(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise OperationalError("INSERT INTO sync_settings", {}, _InsufficientResources("could not extend file"))

    monkeypatch.setattr(jobs, "update_user_sync_settings", disk_full)

    res = client.get("/gmail/sync", params={"type": "initial"})
    assert res.status_code == 429
    body = res.json()
    assert body["ok"] is False
    assert body["quotaExceeded"] is True
    assert body["requiresReauth"] is False

    job = db_session.get(SyncJob, uuid.UUID(body["syncJobId"]))
    assert job is not None
    db_session.refresh(job)
    assert job.status == SyncJobStatus.error
