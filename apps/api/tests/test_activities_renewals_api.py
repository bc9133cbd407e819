from __future__ import annotations

from collections.abc import Callable
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from wbcrm import events
from wbcrm.crm.models import Organization
from wbcrm.crm.renewals import reminder_date, renewal_description, renewal_subject


def _organization(client: TestClient, headers: dict[str, str], **fields: object) -> dict[str, object]:
    payload: dict[str, object] = {"name": "Pet Shop Amigo"}
    payload.update(fields)
    response = client.post("/api/crm/organizations", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _hosted(client: TestClient, headers: dict[str, str], name: str, renewal: date, **fields: object) -> dict[str, object]:
    return _organization(
        client,
        headers,
        name=name,
        has_hosting=True,
        hosting_renewal_date=renewal.isoformat(),
        hosting_plan="Business",
        hosting_value="899.90",
        **fields,
    )


def test_activity_crud_and_toggle(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    created = client.post(
        "/api/crm/activities",
        json={"type": "call", "subject": "Follow up proposal", "due_date": "2026-11-03"},
        headers=auth["sdr"],
    )
    assert created.status_code == 201
    activity = created.json()
    assert activity["completed"] is False
    assert activity["owner_id"] == "user-1"

    toggled = client.post(f"/api/crm/activities/{activity['id']}/toggle", headers=auth["sdr"])
    assert toggled.json()["completed"] is True
    assert events.published_events[-1]["event_type"] == "crm.activity.completed"

    reopened = client.post(f"/api/crm/activities/{activity['id']}/toggle", headers=auth["sdr"])
    assert reopened.json()["completed"] is False
    assert events.published_events[-1]["event_type"] == "crm.activity.reopened"

    updated = client.patch(
        f"/api/crm/activities/{activity['id']}",
        json={"subject": "Follow up signed proposal", "completed": True},
        headers=auth["sdr"],
    )
    assert updated.json()["subject"] == "Follow up signed proposal"
    assert updated.json()["completed"] is True

    assert client.delete(f"/api/crm/activities/{activity['id']}", headers=auth["sdr"]).json() == {"status": "deleted"}
    assert client.get(f"/api/crm/activities/{activity['id']}", headers=auth["sdr"]).status_code == 404


def test_activity_filters(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    call = client.post("/api/crm/activities", json={"type": "call", "subject": "Call owner"}, headers=auth["sdr"]).json()
    visit = client.post("/api/crm/activities", json={"type": "visit", "subject": "Visit store"}, headers=auth["sdr"]).json()
    client.post(f"/api/crm/activities/{visit['id']}/toggle", headers=auth["sdr"])

    by_type = client.get("/api/crm/activities", params={"type": "call"}, headers=auth["sdr"]).json()
    by_completed = client.get("/api/crm/activities", params={"completed": "true"}, headers=auth["sdr"]).json()

    assert [row["id"] for row in by_type] == [call["id"]]
    assert [row["id"] for row in by_completed] == [visit["id"]]


def test_activities_are_owner_only_even_when_linked_record_is_shared(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    share: Callable[[str, str, str], None],
) -> None:
    organization = _organization(client, auth["closer"])
    activity = client.post(
        "/api/crm/activities",
        json={"type": "meeting", "subject": "Kickoff", "organization_id": organization["id"]},
        headers=auth["closer"],
    ).json()
    share("organization", str(organization["id"]), "user-1")

    assert client.get("/api/crm/activities", headers=auth["sdr"]).json() == []
    assert client.get(f"/api/crm/activities/{activity['id']}", headers=auth["sdr"]).status_code == 404
    assert client.post(f"/api/crm/activities/{activity['id']}/toggle", headers=auth["sdr"]).status_code == 404

    admin_view = client.get("/api/crm/activities", params={"owner": "user-2"}, headers=auth["admin"]).json()
    assert [row["id"] for row in admin_view] == [activity["id"]]


def test_upcoming_renewals_window(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    today = date.today()
    soon = _hosted(client, auth["sdr"], "Soon Hosting", today + timedelta(days=10))
    later = _hosted(client, auth["sdr"], "Later Hosting", today + timedelta(days=50))
    _hosted(client, auth["sdr"], "Past Hosting", today - timedelta(days=1))
    _organization(client, auth["sdr"], name="No Hosting")
    _hosted(client, auth["closer"], "Foreign Hosting", today + timedelta(days=5))

    default_window = client.get("/api/crm/hosting-renewals", headers=auth["sdr"])
    wide_window = client.get("/api/crm/hosting-renewals", params={"days": 60}, headers=auth["sdr"])

    assert default_window.status_code == 200
    assert [row["id"] for row in default_window.json()] == [soon["id"]]
    assert default_window.json()[0]["days_until_renewal"] == 10
    assert [row["id"] for row in wide_window.json()] == [soon["id"], later["id"]]

    admin_window = client.get("/api/crm/hosting-renewals", headers=auth["admin"]).json()
    assert [row["name"] for row in admin_window] == ["Foreign Hosting", "Soon Hosting"]


def test_create_renewal_activity_is_idempotent(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    renewal = date.today() + timedelta(days=20)
    organization = _hosted(client, auth["sdr"], "Clinica Sorriso", renewal, hosting_notes="Includes SSL")

    first = client.post(f"/api/crm/hosting-renewals/{organization['id']}/activity", headers=auth["sdr"])
    second = client.post(f"/api/crm/hosting-renewals/{organization['id']}/activity", headers=auth["sdr"])

    assert first.status_code == 201
    activity = first.json()
    assert activity["type"] == "task"
    assert activity["subject"] == "Hosting renewal - Clinica Sorriso"
    assert activity["due_date"] == (renewal - timedelta(days=30)).isoformat()
    assert activity["organization_id"] == organization["id"]
    assert f"Renewal date: {renewal.isoformat()}" in activity["description"]
    assert "Plan: Business" in activity["description"]
    assert "Value: 899.90" in activity["description"]
    assert "Notes: Includes SSL" in activity["description"]
    assert second.status_code == 200
    assert second.json()["id"] == activity["id"]

    reminder_events = [event for event in events.published_events if event["event_type"] == "crm.hosting_renewal.reminder_created"]
    assert len(reminder_events) == 1


def test_renewal_activity_validation(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    share: Callable[[str, str, str], None],
) -> None:
    plain = _organization(client, auth["sdr"], name="No Hosting")
    undated = _organization(client, auth["sdr"], name="Undated Hosting", has_hosting=True)
    foreign = _hosted(client, auth["closer"], "Foreign Hosting", date.today() + timedelta(days=5))
    share("organization", str(foreign["id"]), "user-1")

    no_hosting = client.post(f"/api/crm/hosting-renewals/{plain['id']}/activity", headers=auth["sdr"])
    no_date = client.post(f"/api/crm/hosting-renewals/{undated['id']}/activity", headers=auth["sdr"])
    shared_only = client.post(f"/api/crm/hosting-renewals/{foreign['id']}/activity", headers=auth["sdr"])

    assert no_hosting.status_code == 422
    assert no_hosting.json()["message"] == "organization has no hosting"
    assert no_date.status_code == 422
    assert no_date.json()["message"] == "hosting renewal date not set"
    assert shared_only.status_code == 404
    assert shared_only.json()["message"] == "organization not found"


def test_check_renewals_creates_missing_reminders(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    today = date(2026, 10, 19)
    existing = _hosted(client, auth["sdr"], "Already Reminded", today + timedelta(days=12))
    _hosted(client, auth["sdr"], "Needs Reminder", today + timedelta(days=3), hosting_reminder_days=7)
    _hosted(client, auth["sdr"], "Window Closed", today + timedelta(days=90))
    client.post(f"/api/crm/hosting-renewals/{existing['id']}/activity", headers=auth["sdr"])

    response = client.post("/api/crm/hosting-renewals/check", params={"today": today.isoformat()}, headers=auth["sdr"])

    assert response.status_code == 200
    assert response.json() == {"created": 1, "skipped": 1, "total": 3}
    subjects = {row["subject"] for row in client.get("/api/crm/activities", headers=auth["sdr"]).json()}
    assert subjects == {"Hosting renewal - Already Reminded", "Hosting renewal - Needs Reminder"}

    rerun = client.post("/api/crm/hosting-renewals/check", params={"today": today.isoformat()}, headers=auth["sdr"])
    assert rerun.json() == {"created": 0, "skipped": 2, "total": 3}


def test_renewal_text_helpers() -> None:
    organization = Organization(
        name="Academia Forte",
        owner_id="user-1",
        has_hosting=True,
        hosting_renewal_date=date(2027, 1, 15),
        hosting_reminder_days=30,
    )

    assert renewal_subject(organization.name) == "Hosting renewal - Academia Forte"
    assert renewal_description(organization) == "Hosting renewal for Academia Forte\n\nRenewal date: 2027-01-15"


def test_renewal_text_helpers_require_renewal_date() -> None:
    organization = Organization(name="Sem Data", owner_id="user-1", has_hosting=True, hosting_reminder_days=30)

    with pytest.raises(ValueError, match="no hosting renewal date"):
        renewal_description(organization)
    with pytest.raises(ValueError, match="no hosting renewal date"):
        reminder_date(organization)


def test_same_named_organizations_get_separate_reminders(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    renewal = date.today() + timedelta(days=15)
    matriz = _hosted(client, auth["sdr"], "Padaria Central", renewal)
    filial = _hosted(client, auth["sdr"], "Padaria Central", renewal + timedelta(days=1))

    first = client.post(f"/api/crm/hosting-renewals/{matriz['id']}/activity", headers=auth["sdr"])
    second = client.post(f"/api/crm/hosting-renewals/{filial['id']}/activity", headers=auth["sdr"])

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["id"] != second.json()["id"]
    assert second.json()["organization_id"] == filial["id"]

    result = client.post("/api/crm/hosting-renewals/check", headers=auth["sdr"]).json()
    assert result == {"created": 0, "skipped": 2, "total": 2}
