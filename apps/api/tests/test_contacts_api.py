from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from crm_api.main import create_app


def _get_csrf(client: TestClient) -> str:
    res = client.get("/auth/csrf")
    assert res.status_code == 200
    return res.json()["csrf_token"]


def _dev_login(client: TestClient, *, email: str | None = None) -> dict:
    csrf = _get_csrf(client)
    res = client.post(
        "/auth/dev/login",
        json={"email": email or f"owner-{uuid.uuid4().hex[:8]}@crm.test", "display_name": "Owner"},
        headers={"x-csrf-token": csrf},
    )
    assert res.status_code == 200
    return res.json()


def _client() -> tuple[TestClient, dict[str, str]]:
    client = TestClient(create_app())
    login = _dev_login(client)
    return client, {"x-csrf-token": login["csrf_token"]}


def test_contacts_require_session() -> None:
    client = TestClient(create_app())
    assert client.get("/contacts").status_code == 401


def test_mutations_require_csrf_header() -> None:
    client, _headers = _client()
    res = client.post("/contacts", json={"primaryEmail": "ann@example.com"})
    assert res.status_code == 403


def test_contact_crud_round_trip() -> None:
    client, headers = _client()

    created = client.post(
        "/contacts",
        json={"primaryEmail": " Ann.Lee@Example.com", "firstName": "Ann", "tags": ["vip"], "engagementScore": 75},
        headers=headers,
    )
    assert created.status_code == 201
    body = created.json()
    assert body["contactId"] == "ann_lee_at_example_com"
    assert body["primaryEmail"] == "ann.lee@example.com"
    assert body["tags"] == ["vip"]
    assert body["archived"] is False

    dup = client.post("/contacts", json={"primaryEmail": "ann.lee@example.com"}, headers=headers)
    assert dup.status_code == 409

    bad = client.post("/contacts", json={"primaryEmail": "not-an-email"}, headers=headers)
    assert bad.status_code == 422

    patched = client.patch(
        "/contacts/ann_lee_at_example_com",
        json={"segment": "Enterprise", "tags": None},
        headers=headers,
    )
    assert patched.status_code == 200
    assert patched.json()["segment"] == "Enterprise"
    assert patched.json()["tags"] == []
    assert patched.json()["firstName"] == "Ann"

    found = client.get("/contacts", params={"q": "ann"})
    assert [c["contactId"] for c in found.json()] == ["ann_lee_at_example_com"]
    assert client.get("/contacts", params={"q": "zed"}).json() == []

    assert client.delete("/contacts/ann_lee_at_example_com", headers=headers).status_code == 204
    assert client.get("/contacts/ann_lee_at_example_com").status_code == 404


def test_contacts_are_scoped_to_their_owner() -> None:
    owner, owner_headers = _client()
    other, _ = _client()

    res = owner.post("/contacts", json={"primaryEmail": "private@example.com"}, headers=owner_headers)
    assert res.status_code == 201

    assert other.get("/contacts/private_at_example_com").status_code == 404
    assert other.get("/contacts").json() == []


def test_touchpoint_status_updates() -> None:
    client, headers = _client()
    client.post("/contacts", json={"primaryEmail": "tp@example.com"}, headers=headers)

    done = client.patch(
        "/contacts/tp_at_example_com/touchpoint-status",
        json={"status": "completed", "reason": "Met for coffee"},
        headers=headers,
    )
    assert done.status_code == 200
    assert done.json()["touchpointStatus"] == "completed"
    assert done.json()["touchpointStatusReason"] == "Met for coffee"
    assert done.json()["touchpointStatusUpdatedAt"] is not None

    # Reason is kept when not supplied.
    again = client.patch(
        "/contacts/tp_at_example_com/touchpoint-status",
        json={"status": "pending"},
        headers=headers,
    )
    assert again.json()["touchpointStatusReason"] == "Met for coffee"

    cleared = client.patch(
        "/contacts/tp_at_example_com/touchpoint-status",
        json={"status": None},
        headers=headers,
    )
    assert cleared.json()["touchpointStatus"] is None
    assert cleared.json()["touchpointStatusReason"] is None


def test_bulk_archive_reports_missing_contacts() -> None:
    client, headers = _client()
    client.post("/contacts", json={"primaryEmail": "a@example.com"}, headers=headers)
    client.post("/contacts", json={"primaryEmail": "b@example.com"}, headers=headers)

    res = client.post(
        "/contacts/bulk-archive",
        json={"contactIds": ["a_at_example_com", "b_at_example_com", "ghost"], "archived": True},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.json() == {"success": 2, "errors": 1, "errorDetails": ["ghost: Contact not found"]}

    active = client.get("/contacts", params={"archived": "false"}).json()
    assert active == []
    archived = client.get("/contacts", params={"archived": "true"}).json()
    assert sorted(c["contactId"] for c in archived) == ["a_at_example_com", "b_at_example_com"]

    invalid = client.post(
        "/contacts/bulk-archive",
        json={"contactIds": ["a_at_example_com"], "archived": "yes"},
        headers=headers,
    )
    assert invalid.status_code == 422


def test_json_import_merges_duplicates_and_previews() -> None:
    client, headers = _client()
    client.post("/contacts", json={"primaryEmail": "old@example.com", "firstName": "Old"}, headers=headers)

    rows = [
        {"Email": "old@example.com", "FirstName": "Changed"},
        {"Email": "new@example.com", "FirstName": "New", "Tags": "a"},
        {"Email": "NEW@example.com", "Tags": "b"},
        {"Email": "", "FirstName": "Nobody"},
    ]

    preview = client.post("/contacts/import/preview", json={"rows": rows}, headers=headers)
    assert preview.status_code == 200
    assert preview.json() == {"total": 3, "existing": 1, "new": 2, "merged": 1}

    res = client.post("/contacts/import", json={"rows": rows, "overwriteMode": "skip"}, headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["merged"] == 1
    assert body["total"] == 3
    assert (body["imported"], body["skipped"], body["errors"]) == (1, 1, 1)
    assert body["errorDetails"] == ["Unknown: No email"]

    assert client.get("/contacts/old_at_example_com").json()["firstName"] == "Old"
    assert client.get("/contacts/new_at_example_com").json()["tags"] == ["a", "b"]


def test_csv_import_and_export() -> None:
    client, headers = _client()
    csv_text = "Email,FirstName,Tags,EngagementScore\nann@example.com,Ann,\"vip, lead\",80\n"

    res = client.post(
        "/contacts/import/csv",
        params={"overwrite_mode": "overwrite"},
        files={"file": ("contacts.csv", csv_text.encode("utf-8"), "text/csv")},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.json()["imported"] == 1

    export = client.get("/contacts/export")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "attachment" in export.headers["content-disposition"]
    lines = export.text.splitlines()
    assert lines[0].split(",")[0] == "Email"
    assert lines[1].startswith('ann@example.com,Ann,,,,"vip, lead"')


def test_csv_import_rejects_non_utf8() -> None:
    client, headers = _client()
    res = client.post(
        "/contacts/import/csv",
        files={"file": ("contacts.csv", b"Email\n\xff\xfe@example.com\n", "text/csv")},
        headers=headers,
    )
    assert res.status_code == 422


def test_dashboard_stats_route() -> None:
    client, headers = _client()
    client.post("/contacts", json={"primaryEmail": "d@example.com", "engagementScore": 50}, headers=headers)

    res = client.get("/dashboard/stats")
    assert res.status_code == 200
    stats = res.json()["stats"]
    assert stats["totalContacts"] == 1
    assert stats["averageEngagementScore"] == 50.0
    assert stats["engagementLevels"] == {"high": 0, "medium": 1, "low": 0, "none": 0}
    assert stats["segmentDistribution"] == {"Unknown": 1}
