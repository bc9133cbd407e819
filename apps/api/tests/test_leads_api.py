from __future__ import annotations

from collections.abc import Callable

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from wbcrm import audit, events
from wbcrm.crm.models import Contact, Organization


def _lead_payload(name: str = "Padaria Estrela", **overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "business_name": name,
        "registered_name": f"{name} LTDA",
        "email": "contato@estrela.com.br",
        "city": "Recife",
        "source": "instagram",
        "quality": "warm",
        "contacts": [
            {"name": "Maria Souza", "role": "Owner", "email": "maria@estrela.com.br", "is_primary": True},
            {"name": "Joao Lima", "role": "Manager", "is_primary": True},
        ],
    }
    payload.update(overrides)
    return payload


def _create_lead(client: TestClient, headers: dict[str, str], **overrides: object) -> dict[str, object]:
    response = client.post("/api/crm/leads", json=_lead_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_lead_assigns_owner_and_single_primary_contact(
    client: TestClient,
    auth: dict[str, dict[str, str]],
) -> None:
    lead = _create_lead(client, auth["sdr"])

    assert lead["owner_id"] == "user-1"
    assert lead["status"] == "new"
    assert lead["quality"] == "warm"
    primaries = [contact["name"] for contact in lead["contacts"] if contact["is_primary"]]
    assert primaries == ["Maria Souza"]

    assert audit.audit_entries[-1]["entity_type"] == "crm.lead"
    assert audit.audit_entries[-1]["action"] == "created"
    assert events.published_events[-1]["event_type"] == "crm.lead.created"
    assert events.published_events[-1]["payload"]["lead_id"] == lead["id"]


def test_leads_are_hidden_from_other_sellers(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    mine = _create_lead(client, auth["sdr"], name="Mine Bakery")
    theirs = _create_lead(client, auth["closer"], name="Their Bakery")

    listed = client.get("/api/crm/leads", headers=auth["sdr"])
    assert listed.status_code == 200
    assert [row["id"] for row in listed.json()] == [mine["id"]]

    hidden = client.get(f"/api/crm/leads/{theirs['id']}", headers=auth["sdr"])
    missing = client.get("/api/crm/leads/does-not-exist", headers=auth["sdr"])
    assert hidden.status_code == 404
    assert missing.status_code == 404
    assert hidden.json()["code"] == "crm_lead_get_failed"
    assert hidden.json()["message"] == missing.json()["message"] == "lead not found"

    blocked_update = client.patch(f"/api/crm/leads/{theirs['id']}", json={"status": "contacted"}, headers=auth["sdr"])
    blocked_delete = client.delete(f"/api/crm/leads/{theirs['id']}", headers=auth["sdr"])
    assert blocked_update.status_code == 404
    assert blocked_delete.status_code == 404


def test_owner_selector_is_ignored_for_sellers(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    mine = _create_lead(client, auth["sdr"], name="Mine Bakery")
    _create_lead(client, auth["closer"], name="Their Bakery")

    for selector in ("all", "user-2", "mine"):
        response = client.get("/api/crm/leads", params={"owner": selector}, headers=auth["sdr"])
        assert [row["id"] for row in response.json()] == [mine["id"]]


def test_admin_owner_selector(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    sdr_lead = _create_lead(client, auth["sdr"], name="Seller Bakery")
    closer_lead = _create_lead(client, auth["closer"], name="Closer Bakery")
    admin_lead = _create_lead(client, auth["admin"], name="Admin Bakery")

    def ids(selector: str | None) -> set[str]:
        params = {"owner": selector} if selector is not None else {}
        response = client.get("/api/crm/leads", params=params, headers=auth["admin"])
        assert response.status_code == 200
        return {row["id"] for row in response.json()}

    everything = {sdr_lead["id"], closer_lead["id"], admin_lead["id"]}
    assert ids(None) == everything
    assert ids("all") == everything
    assert ids("") == everything
    assert ids("mine") == {admin_lead["id"]}
    assert ids("user-2") == {closer_lead["id"]}
    assert ids("nobody") == set()


def test_list_leads_filters(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    _create_lead(client, auth["sdr"], name="Oficina Rapida", email="oficina@rapida.com.br", quality="hot")
    cold = _create_lead(client, auth["sdr"], name="Mercado Sol", email="sol@mercado.com.br", quality="cold")

    by_search = client.get("/api/crm/leads", params={"search": "mercado"}, headers=auth["sdr"])
    by_quality = client.get("/api/crm/leads", params={"quality": "cold"}, headers=auth["sdr"])
    by_status = client.get("/api/crm/leads", params={"status": "qualified"}, headers=auth["sdr"])

    assert [row["id"] for row in by_search.json()] == [cold["id"]]
    assert [row["id"] for row in by_quality.json()] == [cold["id"]]
    assert by_status.json() == []


def test_update_and_delete_lead(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    lead = _create_lead(client, auth["sdr"])

    updated = client.patch(
        f"/api/crm/leads/{lead['id']}",
        json={"status": "contacted", "description": "Called twice", "business_name": None},
        headers=auth["sdr"],
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "contacted"
    assert updated.json()["description"] == "Called twice"
    assert updated.json()["business_name"] == lead["business_name"]

    deleted = client.delete(f"/api/crm/leads/{lead['id']}", headers=auth["sdr"])
    assert deleted.status_code == 200
    assert deleted.json() == {"status": "deleted"}
    assert client.get(f"/api/crm/leads/{lead['id']}", headers=auth["sdr"]).status_code == 404


def test_lead_contacts_keep_one_primary(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    lead = _create_lead(client, auth["sdr"])
    original_primary = next(contact for contact in lead["contacts"] if contact["is_primary"])

    added = client.post(
        f"/api/crm/leads/{lead['id']}/contacts",
        json={"name": "Rita Alves", "whatsapp": "+5581999990000", "is_primary": True},
        headers=auth["sdr"],
    )
    assert added.status_code == 201

    contacts = client.get(f"/api/crm/leads/{lead['id']}/contacts", headers=auth["sdr"]).json()
    assert [contact["name"] for contact in contacts if contact["is_primary"]] == ["Rita Alves"]

    switched = client.patch(
        f"/api/crm/lead-contacts/{original_primary['id']}",
        json={"is_primary": True},
        headers=auth["sdr"],
    )
    assert switched.status_code == 200
    contacts = client.get(f"/api/crm/leads/{lead['id']}/contacts", headers=auth["sdr"]).json()
    assert [contact["name"] for contact in contacts if contact["is_primary"]] == ["Maria Souza"]

    removed = client.delete(f"/api/crm/lead-contacts/{added.json()['id']}", headers=auth["sdr"])
    assert removed.status_code == 200
    assert len(client.get(f"/api/crm/leads/{lead['id']}/contacts", headers=auth["sdr"]).json()) == 2


def test_lead_contacts_follow_lead_visibility(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    lead = _create_lead(client, auth["closer"])
    contact_id = lead["contacts"][0]["id"]

    assert client.get(f"/api/crm/leads/{lead['id']}/contacts", headers=auth["sdr"]).status_code == 404
    response = client.patch(f"/api/crm/lead-contacts/{contact_id}", json={"role": "CEO"}, headers=auth["sdr"])
    assert response.status_code == 404
    assert response.json()["message"] == "lead contact not found"


def test_convert_lead_creates_organization_and_contacts(
    client: TestClient,
    db_session: Session,
    auth: dict[str, dict[str, str]],
) -> None:
    lead = _create_lead(client, auth["sdr"])

    response = client.post(f"/api/crm/leads/{lead['id']}/convert", headers=auth["sdr"])

    assert response.status_code == 200
    body = response.json()
    assert body["lead"]["status"] == "qualified"
    assert body["lead"]["converted_at"] is not None
    assert body["lead"]["converted_organization_id"] == body["organization_id"]
    assert len(body["contact_ids"]) == 2
    assert all(contact["converted_to_contact_id"] in body["contact_ids"] for contact in body["lead"]["contacts"])

    organization = db_session.scalar(select(Organization).where(Organization.id == body["organization_id"]))
    assert organization is not None
    assert organization.name == "Padaria Estrela"
    assert organization.source_lead_id == lead["id"]
    assert organization.owner_id == "user-1"

    contacts = db_session.scalars(select(Contact).where(Contact.organization_id == organization.id)).all()
    assert {contact.name for contact in contacts} == {"Maria Souza", "Joao Lima"}
    assert {contact.owner_id for contact in contacts} == {"user-1"}
    assert [contact.name for contact in contacts if contact.is_primary] == ["Maria Souza"]

    assert events.published_events[-1]["event_type"] == "crm.lead.converted"


def test_converted_lead_rules(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    lead = _create_lead(client, auth["sdr"])
    client.post(f"/api/crm/leads/{lead['id']}/convert", headers=auth["sdr"])

    again = client.post(f"/api/crm/leads/{lead['id']}/convert", headers=auth["sdr"])
    delete_lead = client.delete(f"/api/crm/leads/{lead['id']}", headers=auth["sdr"])
    delete_contact = client.delete(f"/api/crm/lead-contacts/{lead['contacts'][0]['id']}", headers=auth["sdr"])

    assert again.status_code == 422
    assert again.json()["message"] == "lead already converted"
    assert delete_lead.status_code == 422
    assert delete_lead.json()["message"] == "converted lead cannot be deleted"
    assert delete_contact.status_code == 422


def test_convert_requires_contacts(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    lead = _create_lead(client, auth["sdr"], contacts=[])

    response = client.post(f"/api/crm/leads/{lead['id']}/convert", headers=auth["sdr"])

    assert response.status_code == 422
    assert response.json()["message"] == "lead needs at least one contact to convert"


def test_shared_lead_becomes_visible_and_editable(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    share: Callable[[str, str, str], None],
) -> None:
    lead = _create_lead(client, auth["closer"], name="Shared Bakery")
    own = _create_lead(client, auth["sdr"], name="Own Bakery")

    share("lead", lead["id"], "user-1")

    listed = client.get("/api/crm/leads", headers=auth["sdr"])
    assert {row["id"] for row in listed.json()} == {lead["id"], own["id"]}
    assert client.get(f"/api/crm/leads/{lead['id']}", headers=auth["sdr"]).status_code == 200

    updated = client.patch(f"/api/crm/leads/{lead['id']}", json={"quality": "hot"}, headers=auth["sdr"])
    assert updated.status_code == 200
    assert updated.json()["owner_id"] == "user-2"

    assert client.get(f"/api/crm/leads/{lead['id']}", headers=auth["other"]).status_code == 404


def test_leads_require_authentication(client: TestClient) -> None:
    assert client.get("/api/crm/leads").status_code == 401
    assert client.post("/api/crm/leads", json=_lead_payload()).status_code == 401


def test_lead_payload_validation(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    response = client.post(
        "/api/crm/leads",
        json=_lead_payload(name="X", quality="lukewarm"),
        headers=auth["sdr"],
    )

    assert response.status_code == 422
