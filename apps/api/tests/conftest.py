from __future__ import annotations

import base64
import os
import tempfile
import uuid
from collections.abc import Generator
from contextlib import suppress
from pathlib import Path

import httpx
import pytest
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.orm import Session

from alembic import command

TEST_CRON_SECRET = "test-cron-secret"


def _make_admin_url(url: URL) -> URL:
    # "postgres" is present in the official image and works for admin tasks.
    return url.set(database="postgres")


def _make_test_db_name() -> str:
    return f"crm_test_{uuid.uuid4().hex}"


def _reset_caches() -> None:
    from crm_api.core.config import get_settings
    from crm_api.db.session import get_engine, get_sessionmaker

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_sessionmaker.cache_clear()


@pytest.fixture(scope="session", autouse=True)
def _test_database() -> Generator[None, None, None]:
    # SQLite file by default; set TEST_DATABASE_URL to run against a local Postgres.
    base_url = os.environ.get("TEST_DATABASE_URL")
    admin_engine = None
    db_name = None
    tmp_dir = None

    if base_url:
        url = make_url(base_url)
        if url.host not in {"localhost", "127.0.0.1", None}:
            raise RuntimeError(
                "Refusing to run tests against a non-local TEST_DATABASE_URL host. "
                "Point it at a local/dev Postgres instance."
            )
        db_name = _make_test_db_name()
        admin_engine = create_engine(
            _make_admin_url(url), isolation_level="AUTOCOMMIT", pool_pre_ping=True
        )
        with admin_engine.connect() as conn:
            conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        test_url = url.set(database=db_name).render_as_string(hide_password=False)
    else:
        tmp_dir = tempfile.TemporaryDirectory(prefix="crm-test-")
        test_url = f"sqlite:///{Path(tmp_dir.name) / 'crm.db'}"

    os.environ["DATABASE_URL"] = test_url
    os.environ["APP_ENV"] = "test"
    os.environ["ALLOW_DEV_LOGIN"] = "true"
    os.environ["COOKIE_SECURE"] = "false"
    os.environ["ENCRYPTION_KEY_BASE64"] = base64.b64encode(b"k" * 32).decode("ascii")
    os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
    os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
    os.environ["CRON_SECRET"] = TEST_CRON_SECRET
    os.environ["RATE_LIMIT_REQUESTS_PER_MINUTE"] = "0"

    # Clear cached settings/engines so imports inside the test session use the test DB.
    _reset_caches()

    alembic_ini = Path(__file__).resolve().parents[1] / "alembic.ini"
    cfg = Config(str(alembic_ini))
    command.upgrade(cfg, "head")

    yield

    from crm_api.db.session import get_engine

    # Ensure connection pools to the test DB are closed before dropping.
    with suppress(Exception):
        get_engine().dispose()
    _reset_caches()

    if admin_engine is not None:
        with admin_engine.connect() as conn:
            conn.execute(
                text(
                    """
                    SELECT pg_terminate_backend(pid)
                    FROM pg_stat_activity
                    WHERE datname = :db_name AND pid <> pg_backend_pid();
                    """
                ),
                {"db_name": db_name},
            )
            conn.execute(text(f'DROP DATABASE IF EXISTS "{db_name}"'))
        admin_engine.dispose()
    if tmp_dir is not None:
        tmp_dir.cleanup()


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    from crm_api.db.session import get_sessionmaker

    SessionLocal = get_sessionmaker()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _b64url(text_value: str) -> str:
    return base64.urlsafe_b64encode(text_value.encode("utf-8")).decode("ascii").rstrip("=")


class FakeGmail:
    """In-memory Gmail + Google token endpoint behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.threads: dict[str, dict] = {}
        self.messages: dict[str, dict] = {}
        self.history_pages: list[dict] = []
        self.history_status = 200
        self.failing_messages: set[str] = set()
        self.failing_threads: set[str] = set()
        self.token_status = 200
        self.token_payload: dict = {
            "access_token": "access-token-refreshed",
            "expires_in": 3600,
            "scope": "https://www.googleapis.com/auth/gmail.readonly",
            "token_type": "Bearer",
        }
        self.requests: list[httpx.Request] = []
        self.http_client = httpx.Client(transport=httpx.MockTransport(self.handler), timeout=10.0)

    def add_message(
        self,
        *,
        message_id: str,
        thread_id: str,
        sender: str,
        to: str = "me@example.com",
        subject: str = "Hello",
        body: str = "Hi there",
        internal_date_ms: int | None = 1_700_000_000_000,
        history_id: str = "100",
    ) -> dict:
        message = {
            "id": message_id,
            "threadId": thread_id,
            "historyId": history_id,
            "snippet": body[:40],
            "payload": {
                "headers": [
                    {"name": "From", "value": sender},
                    {"name": "To", "value": to},
                    {"name": "Subject", "value": subject},
                    {"name": "Date", "value": "Tue, 14 Nov 2023 22:13:20 +0000"},
                ],
                "body": {"data": _b64url(body)},
            },
        }
        if internal_date_ms is not None:
            message["internalDate"] = str(internal_date_ms)
        self.messages[message_id] = message

        thread = self.threads.setdefault(
            thread_id, {"id": thread_id, "historyId": history_id, "snippet": "", "messages": []}
        )
        thread["messages"].append(message)
        thread["snippet"] = message["snippet"]
        if int(history_id) > int(thread["historyId"]):
            thread["historyId"] = history_id
        return message

    def add_history_page(
        self,
        *,
        added: list[tuple[str, str]],
        history_id: str,
        next_page_token: str | None = None,
    ) -> None:
        page: dict = {
            "history": [
                {
                    "id": history_id,
                    "messagesAdded": [{"message": {"id": mid, "threadId": tid}} for mid, tid in added],
                }
            ],
            "historyId": history_id,
        }
        if next_page_token:
            page["nextPageToken"] = next_page_token
        self.history_pages.append(page)

    def gmail_calls(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if str(request.url) == "https://oauth2.googleapis.com/token":
            return httpx.Response(self.token_status, json=self.token_payload)

        prefix = "/gmail/v1/users/me/"
        if not path.startswith(prefix):
            return httpx.Response(404, json={"error": {"message": "not found"}})
        rest = path[len(prefix) :]

        if rest == "history":
            if self.history_status != 200:
                return httpx.Response(self.history_status, json={"error": {"message": "history gone"}})
            token = request.url.params.get("pageToken")
            index = int(token) if token else 0
            if index >= len(self.history_pages):
                return httpx.Response(200, json={})
            return httpx.Response(200, json=self.history_pages[index])

        if rest == "threads":
            listed = [
                {"id": t["id"], "historyId": t["historyId"], "snippet": t["snippet"]}
                for t in self.threads.values()
            ]
            return httpx.Response(200, json={"threads": listed})

        if rest.startswith("threads/"):
            thread_id = rest.split("/", 1)[1]
            if thread_id in self.failing_threads:
                return httpx.Response(500, json={"error": {"message": "backend error"}})
            thread = self.threads.get(thread_id)
            if thread is None:
                return httpx.Response(404, json={"error": {"message": "thread not found"}})
            return httpx.Response(200, json=thread)

        if rest.startswith("messages/"):
            message_id = rest.split("/", 1)[1]
            if message_id in self.failing_messages:
                return httpx.Response(500, json={"error": {"message": "backend error"}})
            message = self.messages.get(message_id)
            if message is None:
                return httpx.Response(404, json={"error": {"message": "message not found"}})
            return httpx.Response(200, json=message)

        return httpx.Response(404, json={"error": {"message": "not found"}})


@pytest.fixture()
def fake_gmail() -> Generator[FakeGmail, None, None]:
    fake = FakeGmail()
    try:
        yield fake
    finally:
        fake.http_client.close()


@pytest.fixture()
def make_user(db_session: Session):
    from crm_api.models.identity import User

    def _make(*, email: str | None = None) -> User:
        user_id = uuid.uuid4().hex
        user = User(id=user_id, email=email or f"user-{user_id}@example.com")
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def link_gmail(db_session: Session):
    from crm_api.services.google.oauth import GoogleTokenResponse
    from crm_api.services.google.tokens import link_google_account

    def _link(user_id: str, *, access_token: str = "access-token-seeded", expires_in: int = 3600) -> None:
        link_google_account(
            session=db_session,
            user_id=user_id,
            token=GoogleTokenResponse(
                access_token=access_token,
                expires_in=expires_in,
                refresh_token="refresh-token-seeded",
                scope="https://www.googleapis.com/auth/gmail.readonly",
                token_type="Bearer",
            ),
        )
        db_session.commit()

    return _link


@pytest.fixture()
def make_contact(db_session: Session):
    from crm_api.models.crm import Contact
    from crm_api.services.contacts.ids import normalize_contact_id

    def _make(user_id: str, email: str, **fields) -> Contact:
        contact = Contact(
            user_id=user_id,
            contact_id=normalize_contact_id(email),
            primary_email=email.strip().lower(),
            tags=fields.pop("tags", []),
            archived=fields.pop("archived", False),
            **fields,
        )
        db_session.add(contact)
        db_session.commit()
        return contact

    return _make
