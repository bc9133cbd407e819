from __future__ import annotations

import re

from fastapi.testclient import TestClient

from wbcrm import audit, events
from wbcrm.catalog.slugs import slugify, unique_slug


def _business_line(client: TestClient, headers: dict[str, str], **fields: object) -> dict[str, object]:
    payload: dict[str, object] = {"name": "Serviços de TI"}
    payload.update(fields)
    response = client.post("/api/catalog/business-lines", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _icp(client: TestClient, headers: dict[str, str], **fields: object) -> dict[str, object]:
    payload: dict[str, object] = {"name": "Clínicas Odontológicas", "content": "Clinics with 2+ dentists"}
    payload.update(fields)
    response = client.post("/api/catalog/icps", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_slugify_strips_accents_and_punctuation() -> None:
    assert slugify("Serviços de TI") == "servicos-de-ti"
    assert slugify("  Marketing & Growth!! ") == "marketing-growth"
    assert slugify("Ação--Rápida") == "acao-rapida"
    assert len(slugify("a" * 60)) == 45


def test_unique_slug_appends_counter() -> None:
    taken = {"sites", "sites-1", "sites-2"}

    assert unique_slug("Sites", taken.__contains__) == "sites-3"
    assert unique_slug("Apps", taken.__contains__) == "apps"


def test_unique_slug_falls_back_to_timestamp() -> None:
    slug = unique_slug("Sites", lambda candidate: True)

    assert re.fullmatch(r"sites-\d{13}", slug)


def test_business_line_lifecycle(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    created = _business_line(client, auth["admin"], color="#1E90FF", order=2)
    duplicate_name = _business_line(client, auth["admin"])

    assert created["slug"] == "servicos-de-ti"
    assert created["is_active"] is True
    assert duplicate_name["slug"] == "servicos-de-ti-1"
    assert audit.audit_entries[-1]["entity_type"] == "catalog.business_line"

    toggled = client.post(f"/api/catalog/business-lines/{created['id']}/toggle", headers=auth["admin"])
    assert toggled.json()["is_active"] is False

    active = client.get("/api/catalog/business-lines", params={"active_only": "true"}, headers=auth["sdr"]).json()
    everything = client.get("/api/catalog/business-lines", headers=auth["sdr"]).json()
    assert [row["id"] for row in active] == [duplicate_name["id"]]
    assert {row["id"] for row in everything} == {created["id"], duplicate_name["id"]}

    renamed = client.patch(
        f"/api/catalog/business-lines/{created['id']}",
        json={"name": "Infraestrutura", "description": "Servers and hosting"},
        headers=auth["admin"],
    )
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Infraestrutura"
    assert renamed.json()["slug"] == "servicos-de-ti"

    deleted = client.delete(f"/api/catalog/business-lines/{created['id']}", headers=auth["admin"])
    assert deleted.json() == {"status": "deleted"}


def test_business_line_slug_conflicts(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    first = _business_line(client, auth["admin"], name="Marketing", slug="marketing")
    second = _business_line(client, auth["admin"], name="Design")

    duplicate = client.post(
        "/api/catalog/business-lines",
        json={"name": "Marketing Digital", "slug": "marketing"},
        headers=auth["admin"],
    )
    rename = client.patch(
        f"/api/catalog/business-lines/{second['id']}",
        json={"slug": first["slug"]},
        headers=auth["admin"],
    )

    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "slug already exists"
    assert rename.status_code == 409


def test_catalog_writes_are_admin_only(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    business_line = _business_line(client, auth["admin"])

    create = client.post("/api/catalog/business-lines", json={"name": "Marketing"}, headers=auth["sdr"])
    toggle = client.post(f"/api/catalog/business-lines/{business_line['id']}/toggle", headers=auth["closer"])
    product = client.post(
        "/api/catalog/products",
        json={"name": "Site institucional", "business_line_id": business_line["id"]},
        headers=auth["sdr"],
    )

    for response in (create, toggle, product):
        assert response.status_code == 403
        assert response.json()["message"] == "admin role required"


def test_products_belong_to_business_lines(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    web = _business_line(client, auth["admin"], name="Web")
    ads = _business_line(client, auth["admin"], name="Ads")

    site = client.post(
        "/api/catalog/products",
        json={"name": "Site Institucional", "business_line_id": web["id"], "base_price": "2500.00", "order": 1},
        headers=auth["admin"],
    )
    store = client.post(
        "/api/catalog/products",
        json={"name": "Loja Virtual", "business_line_id": web["id"], "pricing_type": "monthly", "is_active": False},
        headers=auth["admin"],
    )
    campaign = client.post(
        "/api/catalog/products",
        json={"name": "Google Ads", "business_line_id": ads["id"], "pricing_type": "hourly"},
        headers=auth["admin"],
    )
    orphan = client.post(
        "/api/catalog/products",
        json={"name": "Orphan", "business_line_id": "missing"},
        headers=auth["admin"],
    )

    assert site.status_code == 201
    assert site.json()["slug"] == "site-institucional"
    assert site.json()["currency"] == "BRL"
    assert store.status_code == 201
    assert campaign.status_code == 201
    assert orphan.status_code == 404
    assert orphan.json()["message"] == "business line not found"

    web_products = client.get("/api/catalog/products", params={"business_line_id": web["id"]}, headers=auth["sdr"]).json()
    active_web = client.get(
        "/api/catalog/products",
        params={"business_line_id": web["id"], "active_only": "true"},
        headers=auth["sdr"],
    ).json()
    assert {row["id"] for row in web_products} == {site.json()["id"], store.json()["id"]}
    assert [row["id"] for row in active_web] == [site.json()["id"]]

    blocked = client.delete(f"/api/catalog/business-lines/{web['id']}", headers=auth["admin"])
    assert blocked.status_code == 422
    assert blocked.json()["message"] == "business line has 2 product(s)"

    moved = client.patch(
        f"/api/catalog/products/{store.json()['id']}",
        json={"business_line_id": ads["id"]},
        headers=auth["admin"],
    )
    assert moved.json()["business_line_id"] == ads["id"]
    assert client.delete(f"/api/catalog/products/{site.json()['id']}", headers=auth["admin"]).status_code == 200
    assert client.delete(f"/api/catalog/business-lines/{web['id']}", headers=auth["admin"]).status_code == 200


def test_icp_versions_and_restore(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    icp = _icp(client, auth["sdr"])

    assert icp["slug"] == "clinicas-odontologicas"
    assert icp["owner_id"] == "user-1"
    assert icp["status"] == "draft"
    assert icp["current_version"] == 1
    assert events.published_events[-1]["event_type"] == "catalog.icp.created"

    updated = client.patch(
        f"/api/catalog/icps/{icp['id']}",
        json={"content": "Clinics with 3+ dentists", "status": "active", "change_reason": "Raised threshold"},
        headers=auth["sdr"],
    )
    assert updated.status_code == 200
    assert updated.json()["current_version"] == 2
    assert updated.json()["status"] == "active"

    versions = client.get(f"/api/catalog/icps/{icp['id']}/versions", headers=auth["sdr"]).json()
    assert [row["version_number"] for row in versions] == [2, 1]
    assert [row["change_reason"] for row in versions] == ["Raised threshold", "Initial version"]
    assert versions[1]["content"] == "Clinics with 2+ dentists"

    restored = client.post(f"/api/catalog/icps/{icp['id']}/versions/1/restore", headers=auth["sdr"])
    assert restored.status_code == 200
    assert restored.json()["content"] == "Clinics with 2+ dentists"
    assert restored.json()["status"] == "draft"
    assert restored.json()["current_version"] == 3
    assert events.published_events[-1]["event_type"] == "catalog.icp.restored"

    latest = client.get(f"/api/catalog/icps/{icp['id']}/versions", headers=auth["sdr"]).json()[0]
    assert latest["change_reason"] == "Restored from version 1"
    assert latest["changed_by_id"] == "user-1"

    missing = client.post(f"/api/catalog/icps/{icp['id']}/versions/9/restore", headers=auth["sdr"])
    assert missing.status_code == 404
    assert missing.json()["message"] == "icp version not found"


def test_icps_are_owner_scoped(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    icp = _icp(client, auth["closer"])

    hidden = client.get(f"/api/catalog/icps/{icp['id']}", headers=auth["sdr"])
    blocked = client.patch(f"/api/catalog/icps/{icp['id']}", json={"content": "Hijacked"}, headers=auth["sdr"])

    assert hidden.status_code == 404
    assert hidden.json()["message"] == "icp not found"
    assert blocked.status_code == 404
    assert client.get("/api/catalog/icps", headers=auth["sdr"]).json() == []
    assert client.get(f"/api/catalog/icps/{icp['id']}", headers=auth["admin"]).status_code == 200

    assert client.delete(f"/api/catalog/icps/{icp['id']}", headers=auth["closer"]).json() == {"status": "deleted"}
    assert client.get(f"/api/catalog/icps/{icp['id']}", headers=auth["closer"]).status_code == 404


def test_icp_slug_rules(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    _icp(client, auth["sdr"], name="Academias")

    auto = _icp(client, auth["closer"], name="Academias")
    explicit_taken = client.post(
        "/api/catalog/icps",
        json={"name": "Academias Premium", "slug": "academias", "content": "Gyms"},
        headers=auth["sdr"],
    )
    unusable = client.post("/api/catalog/icps", json={"name": "A!", "content": "Gyms"}, headers=auth["sdr"])

    assert auto["slug"] == "academias-1"
    assert explicit_taken.status_code == 409
    assert unusable.status_code == 422
    assert unusable.json()["message"] == "name does not produce a valid slug"


def test_icp_slug_check(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    _icp(client, auth["sdr"], name="Restaurantes")

    taken = client.get("/api/catalog/icps/slug-check", params={"slug": "restaurantes"}, headers=auth["sdr"])
    free = client.get("/api/catalog/icps/slug-check", params={"name": "Pet Shops"}, headers=auth["sdr"])

    assert taken.json() == {"slug": "restaurantes", "available": False, "suggestion": "restaurantes-1"}
    assert free.json() == {"slug": "pet-shops", "available": True, "suggestion": "pet-shops"}
