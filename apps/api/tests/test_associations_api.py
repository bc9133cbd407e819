from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from wbcrm import events


@pytest.fixture()
def product(client: TestClient, auth: dict[str, dict[str, str]]) -> dict[str, object]:
    business_line = client.post("/api/catalog/business-lines", json={"name": "Web"}, headers=auth["admin"]).json()
    response = client.post(
        "/api/catalog/products",
        json={"name": "Site Institucional", "business_line_id": business_line["id"], "base_price": "2500.00"},
        headers=auth["admin"],
    )
    assert response.status_code == 201, response.text
    return response.json()


def _lead(client: TestClient, headers: dict[str, str], name: str = "Padaria Estrela") -> dict[str, object]:
    response = client.post(
        "/api/crm/leads",
        json={"business_name": name, "contacts": [{"name": "Maria Souza", "is_primary": True}]},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _icp(client: TestClient, headers: dict[str, str], name: str = "Escolas Online") -> dict[str, object]:
    response = client.post("/api/catalog/icps", json={"name": name, "content": "Course creators"}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_lead_product_interest_lifecycle(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    product: dict[str, object],
) -> None:
    lead = _lead(client, auth["sdr"])

    added = client.post(
        f"/api/crm/leads/{lead['id']}/products",
        json={"product_id": product["id"], "interest_level": "high", "estimated_value": "3000.00"},
        headers=auth["sdr"],
    )
    duplicate = client.post(f"/api/crm/leads/{lead['id']}/products", json={"product_id": product["id"]}, headers=auth["sdr"])

    assert added.status_code == 201, added.text
    assert added.json()["product"]["name"] == "Site Institucional"
    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "product already linked to lead"
    assert events.published_events[-1]["event_type"] == "crm.lead.product_added"

    link_id = added.json()["id"]
    updated = client.patch(f"/api/crm/lead-products/{link_id}", json={"interest_level": "low"}, headers=auth["sdr"])
    assert updated.status_code == 200
    assert updated.json()["interest_level"] == "low"
    assert Decimal(str(updated.json()["estimated_value"])) == Decimal("3000.00")

    listed = client.get(f"/api/crm/leads/{lead['id']}/products", headers=auth["sdr"])
    assert [row["id"] for row in listed.json()] == [link_id]

    removed = client.delete(f"/api/crm/lead-products/{link_id}", headers=auth["sdr"])
    assert removed.json() == {"status": "deleted"}
    assert client.get(f"/api/crm/leads/{lead['id']}/products", headers=auth["sdr"]).json() == []


def test_product_links_follow_parent_visibility(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    product: dict[str, object],
) -> None:
    lead = _lead(client, auth["sdr"])
    link = client.post(f"/api/crm/leads/{lead['id']}/products", json={"product_id": product["id"]}, headers=auth["sdr"]).json()

    listing = client.get(f"/api/crm/leads/{lead['id']}/products", headers=auth["other"])
    update = client.patch(f"/api/crm/lead-products/{link['id']}", json={"notes": "mine now"}, headers=auth["other"])
    missing_product = client.post(f"/api/crm/leads/{lead['id']}/products", json={"product_id": "nope"}, headers=auth["sdr"])

    assert listing.status_code == 404
    assert update.status_code == 404
    assert update.json()["message"] == "lead product not found"
    assert missing_product.status_code == 404
    assert missing_product.json()["message"] == "product not found"


def test_organization_and_partner_products(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    product: dict[str, object],
) -> None:
    organization = client.post("/api/crm/organizations", json={"name": "Hotel Mar"}, headers=auth["sdr"]).json()
    partner = client.post("/api/crm/partners", json={"name": "Agencia Pixel", "partner_type": "agency"}, headers=auth["sdr"]).json()

    purchased = client.post(
        f"/api/crm/organizations/{organization['id']}/products",
        json={"product_id": product["id"], "status": "purchased", "total_purchases": 1, "total_revenue": "2500.00"},
        headers=auth["sdr"],
    )
    referral = client.post(
        f"/api/crm/partners/{partner['id']}/products",
        json={"product_id": product["id"], "expertise_level": "expert", "commission_type": "percentage", "commission_value": "10"},
        headers=auth["sdr"],
    )

    assert purchased.status_code == 201, purchased.text
    assert purchased.json()["status"] == "purchased"
    assert referral.status_code == 201, referral.text
    assert referral.json()["can_refer"] is True
    assert referral.json()["can_deliver"] is False

    delivered = client.patch(
        f"/api/crm/partner-products/{referral.json()['id']}",
        json={"can_deliver": True},
        headers=auth["sdr"],
    )
    assert delivered.json()["can_deliver"] is True
    assert delivered.json()["expertise_level"] == "expert"

    removed = client.delete(f"/api/crm/organization-products/{purchased.json()['id']}", headers=auth["sdr"])
    assert removed.status_code == 200
    assert client.get(f"/api/crm/organizations/{organization['id']}/products", headers=auth["sdr"]).json() == []


def test_deal_lines_drive_calculated_and_expected_value(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    product: dict[str, object],
) -> None:
    pipeline = client.post(
        "/api/crm/pipelines",
        json={"name": "Sales", "is_default": True, "stages": [{"name": "Prospect", "order": 0, "probability": 10}]},
        headers=auth["admin"],
    ).json()
    deal = client.post(
        "/api/crm/deals",
        json={"title": "Website", "value": "1000.00", "stage_id": pipeline["stages"][0]["id"]},
        headers=auth["sdr"],
    ).json()
    assert Decimal(str(deal["calculated_value"])) == Decimal("1000.00")

    line = client.post(
        f"/api/crm/deals/{deal['id']}/products",
        json={"product_id": product["id"], "quantity": 2, "discount": "10"},
        headers=auth["sdr"],
    )
    assert line.status_code == 201, line.text
    assert Decimal(str(line.json()["unit_price"])) == Decimal("2500.00")
    assert Decimal(str(line.json()["total_value"])) == Decimal("4500.00")

    refreshed = client.get(f"/api/crm/deals/{deal['id']}", headers=auth["sdr"]).json()
    assert Decimal(str(refreshed["value"])) == Decimal("1000.00")
    assert Decimal(str(refreshed["calculated_value"])) == Decimal("4500.00")
    assert Decimal(str(refreshed["expected_value"])) == Decimal("450.00")

    repriced = client.patch(
        f"/api/crm/deal-products/{line.json()['id']}",
        json={"unit_price": "2000.00", "discount": "0"},
        headers=auth["sdr"],
    )
    assert Decimal(str(repriced.json()["total_value"])) == Decimal("4000.00")


def test_icp_link_lifecycle(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    lead = _lead(client, auth["sdr"])
    icp = _icp(client, auth["sdr"])

    linked = client.post(
        f"/api/crm/leads/{lead['id']}/icps",
        json={"icp_id": icp["id"], "match_score": 70},
        headers=auth["sdr"],
    )
    duplicate = client.post(f"/api/crm/leads/{lead['id']}/icps", json={"icp_id": icp["id"]}, headers=auth["sdr"])

    assert linked.status_code == 201, linked.text
    assert linked.json()["icp"]["name"] == "Escolas Online"
    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "icp already linked to lead"

    qualified = client.patch(
        f"/api/crm/leads/{lead['id']}/icps/{icp['id']}",
        json={
            "icp_fit_status": "ideal",
            "perceived_urgency": ["current_need", "active_pain"],
            "current_platforms": ["hotmart"],
            "expansion_potential": 4,
        },
        headers=auth["sdr"],
    )
    assert qualified.status_code == 200, qualified.text
    assert qualified.json()["match_score"] == 70
    assert qualified.json()["perceived_urgency"] == ["current_need", "active_pain"]
    assert events.published_events[-1]["event_type"] == "crm.lead.icp_link_updated"

    members = client.get(f"/api/catalog/icps/{icp['id']}/leads", headers=auth["sdr"])
    assert [row["id"] for row in members.json()] == [lead["id"]]

    unlinked = client.delete(f"/api/crm/leads/{lead['id']}/icps/{icp['id']}", headers=auth["sdr"])
    again = client.delete(f"/api/crm/leads/{lead['id']}/icps/{icp['id']}", headers=auth["sdr"])
    assert unlinked.json() == {"status": "deleted"}
    assert again.status_code == 404
    assert again.json()["message"] == "icp not linked to lead"


def test_icp_link_rejects_foreign_icp_and_invalid_scores(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    lead = _lead(client, auth["sdr"])
    foreign = _icp(client, auth["closer"], name="Clinicas")

    response = client.post(f"/api/crm/leads/{lead['id']}/icps", json={"icp_id": foreign["id"]}, headers=auth["sdr"])
    invalid = client.post(
        f"/api/crm/leads/{lead['id']}/icps",
        json={"icp_id": foreign["id"], "match_score": 120},
        headers=auth["sdr"],
    )

    assert response.status_code == 404
    assert response.json()["message"] == "icp not found"
    assert invalid.status_code == 422


def test_converted_lead_carries_icp_links(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    lead = _lead(client, auth["sdr"])
    icp = _icp(client, auth["sdr"])
    client.post(f"/api/crm/leads/{lead['id']}/icps", json={"icp_id": icp["id"], "match_score": 80}, headers=auth["sdr"])

    converted = client.post(f"/api/crm/leads/{lead['id']}/convert", headers=auth["sdr"])

    assert converted.status_code == 200, converted.text
    organization_id = converted.json()["organization_id"]
    links = client.get(f"/api/crm/organizations/{organization_id}/icps", headers=auth["sdr"]).json()
    assert [(row["icp_id"], row["match_score"]) for row in links] == [(icp["id"], 80)]
    assert events.published_events[-1]["payload"]["icp_ids"] == [icp["id"]]

    members = client.get(f"/api/catalog/icps/{icp['id']}/organizations", headers=auth["sdr"])
    assert [row["id"] for row in members.json()] == [organization_id]


def test_touch_partner_records_last_contact(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    partner = client.post("/api/crm/partners", json={"name": "Agencia Pixel", "partner_type": "agency"}, headers=auth["sdr"]).json()
    assert partner["last_contact_date"] is None

    touched = client.post(f"/api/crm/partners/{partner['id']}/touch", headers=auth["sdr"])
    foreign = client.post(f"/api/crm/partners/{partner['id']}/touch", headers=auth["other"])

    assert touched.status_code == 200, touched.text
    assert touched.json()["last_contact_date"] == date.today().isoformat()
    assert events.published_events[-1]["event_type"] == "crm.partner.contacted"
    assert foreign.status_code == 404
