from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from crm_api.db.errors import StoreQuotaExceededError
from crm_api.db.upsert import statement_timeout
from crm_api.main import create_app


class _OutOfMemory(Exception):
    sqlstate = "53200"


class _SyntaxProblem(Exception):
    sqlstate = "42601"


def _client_raising(exc: Exception) -> TestClient:
    app = create_app()

    @app.get("/_store-failure")
    def store_failure() -> None:
        raise exc

    return TestClient(app, raise_server_exceptions=False)


def test_quota_error_maps_to_429() -> None:
    res = _client_raising(StoreQuotaExceededError("Database quota exceeded")).get("/_store-failure")
    assert res.status_code == 429
    assert res.json()["quotaExceeded"] is True


def test_insufficient_resources_sqlstate_maps_to_429() -> None:
    exc = OperationalError("UPDATE contacts", {}, _OutOfMemory("out of memory"))
    res = _client_raising(exc).get("/_store-failure")
    assert res.status_code == 429
    assert res.json() == {
        "detail": "Database quota exceeded. Please wait a few minutes and try again.",
        "quotaExceeded": True,
    }


def test_other_database_errors_are_opaque_500() -> None:
    exc = OperationalError("UPDATE contacts", {}, _SyntaxProblem("syntax error at or near"))
    res = _client_raising(exc).get("/_store-failure")
    assert res.status_code == 500
    assert res.json() == {"detail": "Internal Server Error"}


def test_statement_timeout_is_restored_after_block(db_session: Session) -> None:
    if db_session.get_bind().dialect.name != "postgresql":
        with statement_timeout(db_session, timeout_ms=5000):
            assert db_session.execute(text("SELECT 1")).scalar_one() == 1
        return

    before = db_session.execute(text("SHOW statement_timeout")).scalar_one()
    with db_session.begin_nested(), statement_timeout(db_session, timeout_ms=5000):
        assert db_session.execute(text("SHOW statement_timeout")).scalar_one() == "5s"
    assert db_session.execute(text("SHOW statement_timeout")).scalar_one() == before
    db_session.rollback()


def test_statement_timeout_is_discarded_with_failed_savepoint(db_session: Session) -> None:
    if db_session.get_bind().dialect.name != "postgresql":
        pytest.skip("server-side statement timeouts are PostgreSQL only")

    before = db_session.execute(text("SHOW statement_timeout")).scalar_one()
    with pytest.raises(RuntimeError):
        with db_session.begin_nested(), statement_timeout(db_session, timeout_ms=5000):
            raise RuntimeError("row failed")
    assert db_session.execute(text("SHOW statement_timeout")).scalar_one() == before
    db_session.rollback()
