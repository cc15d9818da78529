from __future__ import annotations

from fastapi.testclient import TestClient

from crm_api.core.config import get_settings
from crm_api.main import create_app


def test_healthz_reports_version() -> None:
    client = TestClient(create_app())
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "version": get_settings().VERSION}


def test_readyz_checks_database() -> None:
    client = TestClient(create_app())
    res = client.get("/readyz")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ready"
    assert body["database"] in {"sqlite", "postgresql"}


def test_responses_carry_request_id_and_security_headers() -> None:
    client = TestClient(create_app())
    res = client.get("/healthz", headers={"x-request-id": "req-123"})
    assert res.headers["x-request-id"] == "req-123"
    assert res.headers["x-content-type-options"] == "nosniff"
    assert res.headers["x-frame-options"] == "DENY"


def test_generated_request_id_when_none_supplied() -> None:
    client = TestClient(create_app())
    first = client.get("/healthz").headers["x-request-id"]
    second = client.get("/healthz").headers["x-request-id"]
    assert first and second and first != second
