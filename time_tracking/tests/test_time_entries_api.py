from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from time_tracking.main import app
from time_tracking.tests.helpers import load_entry

client = TestClient(app)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _mint_token(user_id="user-1", company_id=1, role="EMPLOYEE") -> str:
    r = client.post("/auth/token", json={"user_id": user_id, "company_id": company_id, "role": role})
    assert r.status_code == 200, r.text
    return r.json()["access_token"]


def _headers(user_id="user-1", company_id=1, role="EMPLOYEE") -> dict:
    token = _mint_token(user_id=user_id, company_id=company_id, role=role)
    return {"Authorization": f"Bearer {token}", "X-Company-Id": str(company_id)}


def test_missing_authorization_header_401():
    r = client.get("/time-tracking/entries", headers={"X-Company-Id": "1"})
    assert r.status_code == 401


def test_garbled_bearer_token_401():
    r = client.get(
        "/time-tracking/entries",
        headers={"Authorization": "Bearer not-a-real-token", "X-Company-Id": "1"},
    )
    assert r.status_code == 401


def test_company_mismatch_403():
    token = _mint_token(company_id=1)
    r = client.get(
        "/time-tracking/entries",
        headers={"Authorization": f"Bearer {token}", "X-Company-Id": "2"},
    )
    assert r.status_code == 403
    assert "Company mismatch" in r.text


def test_timer_lifecycle_over_http():
    headers = _headers()

    r = client.post("/time-tracking/entries/timer/start", json={"description": "Pairing"}, headers=headers)
    assert r.status_code == 201, r.text
    entry_id = r.json()["id"]
    assert r.json()["is_running"] is True
    assert r.json()["duration_formatted"] is None

    r = client.post("/time-tracking/entries/timer/start", json={}, headers=headers)
    assert r.status_code == 409
    assert r.json()["error"] == "ALREADY_RUNNING"

    r = client.get("/time-tracking/entries/timer/active", headers=headers)
    assert r.status_code == 200
    assert r.json()["id"] == entry_id

    r = client.patch("/time-tracking/entries/timer/active", json={"tags": ["pair"]}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["tags"] == ["pair"]

    r = client.post("/time-tracking/entries/timer/stop", json={}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["is_running"] is False
    assert r.json()["duration_minutes"] == 0

    r = client.post("/time-tracking/entries/timer/stop", headers=headers)
    assert r.status_code == 409
    assert r.json()["error"] == "NOT_RUNNING"

    r = client.get("/time-tracking/entries/timer/active", headers=headers)
    assert r.status_code == 200
    assert r.json() is None


def test_discard_timer_over_http():
    headers = _headers()
    r = client.post("/time-tracking/entries/timer/start", json={}, headers=headers)
    entry_id = r.json()["id"]

    r = client.delete("/time-tracking/entries/timer/discard", headers=headers)
    assert r.status_code == 204

    assert load_entry(entry_id).is_active is False


def test_crud_and_approval_over_http():
    employee = _headers()
    manager = _headers(user_id="manager-1", role="MANAGER")

    r = client.post(
        "/time-tracking/entries",
        json={
            "description": "Backlog grooming",
            "start_time": T0.isoformat(),
            "end_time": (T0 + timedelta(minutes=90)).isoformat(),
            "hourly_rate": "100.00",
        },
        headers=employee,
    )
    assert r.status_code == 201, r.text
    entry_id = r.json()["id"]
    assert r.json()["duration_minutes"] == 90
    assert r.json()["duration_formatted"] == "01:30"
    assert r.json()["duration_human"] == "1h 30m"
    assert r.json()["status"] == "DRAFT"

    r = client.patch(f"/time-tracking/entries/{entry_id}", json={"description": "Grooming"}, headers=employee)
    assert r.status_code == 200, r.text
    assert r.json()["description"] == "Grooming"

    r = client.post(f"/time-tracking/entries/{entry_id}/approve", headers=employee)
    assert r.status_code == 403
    assert r.json()["error"] == "FORBIDDEN"

    r = client.post(f"/time-tracking/entries/{entry_id}/approve", headers=manager)
    assert r.status_code == 409
    assert r.json()["error"] == "INVALID_STATUS"

    r = client.post(f"/time-tracking/entries/{entry_id}/submit", headers=employee)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "SUBMITTED"

    r = client.post(f"/time-tracking/entries/{entry_id}/approve", headers=manager)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "APPROVED"
    assert r.json()["is_locked"] is True

    r = client.patch(f"/time-tracking/entries/{entry_id}", json={"description": "late"}, headers=employee)
    assert r.status_code == 403
    assert r.json()["error"] == "LOCKED"

    r = client.post(f"/time-tracking/entries/{entry_id}/unlock", headers=employee)
    assert r.status_code == 403
    assert r.json()["error"] == "UNLOCK_NOT_AUTHORIZED"

    r = client.post(f"/time-tracking/entries/{entry_id}/unlock", json={"reason": "fix"}, headers=manager)
    assert r.status_code == 200, r.text
    assert r.json()["is_locked"] is False
    assert r.json()["status"] == "APPROVED"


def test_get_and_delete_over_http():
    employee = _headers()
    other = _headers(user_id="user-2")

    r = client.post(
        "/time-tracking/entries",
        json={"start_time": T0.isoformat(), "end_time": (T0 + timedelta(minutes=30)).isoformat()},
        headers=employee,
    )
    entry_id = r.json()["id"]

    r = client.get(f"/time-tracking/entries/{entry_id}", headers=other)
    assert r.status_code == 404
    assert r.json()["error"] == "NOT_FOUND"

    r = client.delete(f"/time-tracking/entries/{entry_id}", headers=employee)
    assert r.status_code == 204

    r = client.get(f"/time-tracking/entries/{entry_id}", headers=employee)
    assert r.status_code == 404


def test_create_with_end_before_start_is_422():
    r = client.post(
        "/time-tracking/entries",
        json={"start_time": T0.isoformat(), "end_time": (T0 - timedelta(minutes=30)).isoformat()},
        headers=_headers(),
    )
    assert r.status_code == 422
    assert r.json()["error"] == "VALIDATION_FAILED"


def test_list_and_bulk_actions_over_http():
    employee = _headers()
    manager = _headers(user_id="manager-1", role="MANAGER")

    ids = []
    for i in range(3):
        start = T0 + timedelta(hours=i)
        r = client.post(
            "/time-tracking/entries",
            json={"start_time": start.isoformat(), "end_time": (start + timedelta(minutes=30)).isoformat()},
            headers=employee,
        )
        assert r.status_code == 201, r.text
        ids.append(r.json()["id"])

    for entry_id in ids:
        r = client.post(f"/time-tracking/entries/{entry_id}/submit", headers=employee)
        assert r.status_code == 200, r.text

    r = client.get("/time-tracking/entries", params={"status": "SUBMITTED", "limit": 2}, headers=manager)
    assert r.status_code == 200, r.text
    page = r.json()
    assert page["total"] == 3
    assert page["total_pages"] == 2
    assert len(page["items"]) == 2

    r = client.post(
        "/time-tracking/entries/bulk-reject",
        json={"entry_ids": [ids[0]], "rejection_note": "Wrong task"},
        headers=manager,
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"rejected": 1, "not_found": 0}

    r = client.post(
        "/time-tracking/entries/bulk-approve",
        json={"entry_ids": ids + ["missing"]},
        headers=manager,
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"approved": 2, "not_found": 2}

    r = client.get("/time-tracking/entries", params={"statuses": ["APPROVED", "REJECTED"]}, headers=employee)
    assert r.status_code == 200
    assert r.json()["total"] == 3

    r = client.get("/time-tracking/entries", params={"status": "BOGUS"}, headers=employee)
    assert r.status_code == 422


def test_settings_over_http():
    employee = _headers()
    manager = _headers(user_id="manager-1", role="MANAGER")

    r = client.get("/time-tracking/settings", headers=employee)
    assert r.status_code == 200, r.text
    assert r.json()["rounding_method"] == "NONE"
    assert r.json()["allow_overlapping_entries"] is True

    r = client.patch("/time-tracking/settings", json={"rounding_method": "UP"}, headers=employee)
    assert r.status_code == 403

    r = client.patch(
        "/time-tracking/settings",
        json={"rounding_method": "UP", "rounding_interval_minutes": 30, "allow_overlapping_entries": False},
        headers=manager,
    )
    assert r.status_code == 200, r.text
    assert r.json()["rounding_method"] == "UP"

    r = client.post(
        "/time-tracking/entries",
        json={"start_time": T0.isoformat(), "end_time": (T0 + timedelta(minutes=10)).isoformat()},
        headers=employee,
    )
    assert r.status_code == 201, r.text
    assert r.json()["duration_minutes"] == 30

    r = client.post(
        "/time-tracking/entries",
        json={"start_time": T0.isoformat(), "end_time": (T0 + timedelta(minutes=10)).isoformat()},
        headers=employee,
    )
    assert r.status_code == 409
    assert r.json()["error"] == "OVERLAP"
