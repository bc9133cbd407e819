from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from wbcrm import events


@pytest.fixture()
def pipeline(client: TestClient, auth: dict[str, dict[str, str]]) -> dict[str, object]:
    response = client.post(
        "/api/crm/pipelines",
        json={
            "name": "Sales",
            "is_default": True,
            "stages": [
                {"name": "Prospect", "order": 0, "probability": 10},
                {"name": "Discovery", "order": 1, "probability": 25},
                {"name": "Proposal", "order": 2, "probability": 60},
                {"name": "Closing", "order": 3, "probability": 90},
            ],
        },
        headers=auth["admin"],
    )
    assert response.status_code == 201, response.text
    return response.json()


def _stage(pipeline: dict[str, object], name: str) -> str:
    return next(stage["id"] for stage in pipeline["stages"] if stage["name"] == name)  # type: ignore[index,union-attr]


def _create_deal(client: TestClient, headers: dict[str, str], stage_id: str, **overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {"title": "Website redesign", "value": "1000.00", "stage_id": stage_id}
    payload.update(overrides)
    response = client.post("/api/crm/deals", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_pipelines_are_listed_with_ordered_stages(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    response = client.get("/api/crm/pipelines", headers=auth["sdr"])

    assert response.status_code == 200
    body = response.json()
    assert [row["name"] for row in body] == ["Sales"]
    assert [stage["order"] for stage in body[0]["stages"]] == [0, 1, 2, 3]
    assert client.get(f"/api/crm/pipelines/{pipeline['id']}", headers=auth["sdr"]).json()["is_default"] is True


def test_new_default_pipeline_replaces_previous(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    response = client.post("/api/crm/pipelines", json={"name": "Renewals", "is_default": True}, headers=auth["admin"])

    assert response.status_code == 201
    defaults = [row["name"] for row in client.get("/api/crm/pipelines", headers=auth["sdr"]).json() if row["is_default"]]
    assert defaults == ["Renewals"]


def test_pipeline_management_is_admin_only(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    create = client.post("/api/crm/pipelines", json={"name": "Mine"}, headers=auth["sdr"])
    add_stage = client.post(
        f"/api/crm/pipelines/{pipeline['id']}/stages",
        json={"name": "Extra", "order": 9},
        headers=auth["closer"],
    )
    delete_stage = client.delete(f"/api/crm/stages/{_stage(pipeline, 'Prospect')}", headers=auth["sdr"])

    assert create.status_code == 403
    assert create.json()["message"] == "admin role required"
    assert add_stage.status_code == 403
    assert delete_stage.status_code == 403


def test_stage_order_is_unique_per_pipeline(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    duplicate = client.post(
        f"/api/crm/pipelines/{pipeline['id']}/stages",
        json={"name": "Twin", "order": 1},
        headers=auth["admin"],
    )
    added = client.post(
        f"/api/crm/pipelines/{pipeline['id']}/stages",
        json={"name": "Won", "order": 4, "probability": 100},
        headers=auth["admin"],
    )
    renamed = client.patch(f"/api/crm/stages/{added.json()['id']}", json={"name": "Signed"}, headers=auth["admin"])

    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "stage order already used in pipeline"
    assert added.status_code == 201
    assert renamed.json()["name"] == "Signed"


def test_stage_with_deals_cannot_be_deleted(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    _create_deal(client, auth["sdr"], _stage(pipeline, "Prospect"))

    blocked = client.delete(f"/api/crm/stages/{_stage(pipeline, 'Prospect')}", headers=auth["admin"])
    allowed = client.delete(f"/api/crm/stages/{_stage(pipeline, 'Closing')}", headers=auth["admin"])

    assert blocked.status_code == 422
    assert blocked.json()["message"] == "stage has deals"
    assert allowed.status_code == 200


def test_create_deal_records_initial_history_and_expected_value(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    deal = _create_deal(client, auth["sdr"], _stage(pipeline, "Discovery"))

    assert deal["owner_id"] == "user-1"
    assert deal["status"] == "open"
    assert deal["currency"] == "BRL"
    assert deal["stage_name"] == "Discovery"
    assert deal["probability"] == 25
    assert Decimal(str(deal["expected_value"])) == Decimal("250.00")

    history = client.get(f"/api/crm/deals/{deal['id']}/history", headers=auth["sdr"]).json()
    assert len(history) == 1
    assert history[0]["from_stage_id"] is None
    assert history[0]["to_stage_id"] == _stage(pipeline, "Discovery")
    assert history[0]["changed_by_id"] == "user-1"


def test_high_probability_stage_requires_contact_or_organization(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    rejected = client.post(
        "/api/crm/deals",
        json={"title": "Big deal", "value": "5000", "stage_id": _stage(pipeline, "Proposal")},
        headers=auth["sdr"],
    )
    assert rejected.status_code == 422
    assert rejected.json()["message"] == "deal needs a contact or organization for this stage"

    deal = _create_deal(client, auth["sdr"], _stage(pipeline, "Prospect"))
    blocked = client.post(
        f"/api/crm/deals/{deal['id']}/stage",
        json={"stage_id": _stage(pipeline, "Proposal")},
        headers=auth["sdr"],
    )
    assert blocked.status_code == 422

    organization = client.post("/api/crm/organizations", json={"name": "Loja Azul"}, headers=auth["sdr"]).json()
    linked = client.patch(f"/api/crm/deals/{deal['id']}", json={"organization_id": organization["id"]}, headers=auth["sdr"])
    assert linked.status_code == 200

    moved = client.post(
        f"/api/crm/deals/{deal['id']}/stage",
        json={"stage_id": _stage(pipeline, "Proposal")},
        headers=auth["sdr"],
    )
    assert moved.status_code == 200
    assert moved.json()["stage_id"] == _stage(pipeline, "Proposal")
    assert Decimal(str(moved.json()["expected_value"])) == Decimal("600.00")


def test_stage_changes_append_history(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    deal = _create_deal(client, auth["sdr"], _stage(pipeline, "Prospect"))

    client.post(f"/api/crm/deals/{deal['id']}/stage", json={"stage_id": _stage(pipeline, "Discovery")}, headers=auth["sdr"])
    same = client.post(f"/api/crm/deals/{deal['id']}/stage", json={"stage_id": _stage(pipeline, "Discovery")}, headers=auth["sdr"])
    client.post(f"/api/crm/deals/{deal['id']}/stage", json={"stage_id": _stage(pipeline, "Prospect")}, headers=auth["sdr"])

    assert same.status_code == 200
    history = client.get(f"/api/crm/deals/{deal['id']}/history", headers=auth["sdr"]).json()
    assert [(row["from_stage_id"], row["to_stage_id"]) for row in history] == [
        (None, _stage(pipeline, "Prospect")),
        (_stage(pipeline, "Prospect"), _stage(pipeline, "Discovery")),
        (_stage(pipeline, "Discovery"), _stage(pipeline, "Prospect")),
    ]
    stage_events = [event for event in events.published_events if event["event_type"] == "crm.deal.stage_changed"]
    assert len(stage_events) == 2


def test_closed_deal_cannot_move_backwards(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    deal = _create_deal(client, auth["sdr"], _stage(pipeline, "Discovery"))

    won = client.patch(f"/api/crm/deals/{deal['id']}", json={"status": "won"}, headers=auth["sdr"])
    assert won.status_code == 200
    assert won.json()["closed_at"] is not None

    backwards = client.post(
        f"/api/crm/deals/{deal['id']}/stage",
        json={"stage_id": _stage(pipeline, "Prospect")},
        headers=auth["sdr"],
    )
    assert backwards.status_code == 422
    assert backwards.json()["message"] == "closed deal cannot move to an earlier stage"

    reopened = client.patch(f"/api/crm/deals/{deal['id']}", json={"status": "open"}, headers=auth["sdr"])
    assert reopened.json()["closed_at"] is None
    moved = client.post(
        f"/api/crm/deals/{deal['id']}/stage",
        json={"stage_id": _stage(pipeline, "Prospect")},
        headers=auth["sdr"],
    )
    assert moved.status_code == 200


def test_stage_from_other_pipeline_is_rejected(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    other = client.post(
        "/api/crm/pipelines",
        json={"name": "Partners", "stages": [{"name": "Intro", "order": 0}]},
        headers=auth["admin"],
    ).json()
    deal = _create_deal(client, auth["sdr"], _stage(pipeline, "Prospect"))

    response = client.post(
        f"/api/crm/deals/{deal['id']}/stage",
        json={"stage_id": other["stages"][0]["id"]},
        headers=auth["sdr"],
    )

    assert response.status_code == 422
    assert response.json()["message"] == "stage belongs to another pipeline"


def test_deal_visibility_and_sharing(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
    share: Callable[[str, str, str], None],
) -> None:
    deal = _create_deal(client, auth["closer"], _stage(pipeline, "Prospect"), title="Closer deal")

    assert client.get("/api/crm/deals", headers=auth["sdr"]).json() == []
    assert client.get(f"/api/crm/deals/{deal['id']}", headers=auth["sdr"]).status_code == 404
    assert client.get(f"/api/crm/deals/{deal['id']}/history", headers=auth["sdr"]).status_code == 404

    share("deal", deal["id"], "user-1")

    assert [row["id"] for row in client.get("/api/crm/deals", headers=auth["sdr"]).json()] == [deal["id"]]
    assert client.get(f"/api/crm/deals/{deal['id']}/history", headers=auth["sdr"]).status_code == 200
    assert [row["id"] for row in client.get("/api/crm/deals", params={"owner": "user-2"}, headers=auth["admin"]).json()] == [
        deal["id"]
    ]


def test_deal_filters_and_delete(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    prospect = _create_deal(client, auth["sdr"], _stage(pipeline, "Prospect"), title="Hosting migration")
    discovery = _create_deal(client, auth["sdr"], _stage(pipeline, "Discovery"), title="Landing page")
    client.patch(f"/api/crm/deals/{discovery['id']}", json={"status": "lost"}, headers=auth["sdr"])

    by_stage = client.get("/api/crm/deals", params={"stage_id": _stage(pipeline, "Prospect")}, headers=auth["sdr"]).json()
    by_status = client.get("/api/crm/deals", params={"status": "lost"}, headers=auth["sdr"]).json()
    by_search = client.get("/api/crm/deals", params={"search": "hosting"}, headers=auth["sdr"]).json()

    assert [row["id"] for row in by_stage] == [prospect["id"]]
    assert [row["id"] for row in by_status] == [discovery["id"]]
    assert [row["id"] for row in by_search] == [prospect["id"]]

    assert client.delete(f"/api/crm/deals/{prospect['id']}", headers=auth["sdr"]).json() == {"status": "deleted"}
    assert client.get(f"/api/crm/deals/{prospect['id']}", headers=auth["sdr"]).status_code == 404


def test_deal_with_unknown_stage(client: TestClient, auth: dict[str, dict[str, str]]) -> None:
    response = client.post("/api/crm/deals", json={"title": "Orphan", "stage_id": "missing"}, headers=auth["sdr"])

    assert response.status_code == 404
    assert response.json()["message"] == "stage not found"


def test_unlinking_qualified_deal_is_rejected(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    organization = client.post("/api/crm/organizations", json={"name": "Loja Verde"}, headers=auth["sdr"]).json()
    deal = _create_deal(client, auth["sdr"], _stage(pipeline, "Proposal"), organization_id=organization["id"])

    unlinked = client.patch(f"/api/crm/deals/{deal['id']}", json={"organization_id": None}, headers=auth["sdr"])

    assert unlinked.status_code == 422
    assert unlinked.json()["message"] == "deal needs a contact or organization for this stage"
    assert client.get(f"/api/crm/deals/{deal['id']}", headers=auth["sdr"]).json()["organization_id"] == organization["id"]

    renamed = client.patch(f"/api/crm/deals/{deal['id']}", json={"title": "Loja Verde site"}, headers=auth["sdr"])
    assert renamed.status_code == 200


def test_open_deal_may_enter_last_stage_without_links(
    client: TestClient,
    auth: dict[str, dict[str, str]],
    pipeline: dict[str, object],
) -> None:
    deal = _create_deal(client, auth["sdr"], _stage(pipeline, "Discovery"))

    closing = client.post(
        f"/api/crm/deals/{deal['id']}/stage",
        json={"stage_id": _stage(pipeline, "Closing")},
        headers=auth["sdr"],
    )

    assert closing.status_code == 200
    assert closing.json()["stage_id"] == _stage(pipeline, "Closing")
    assert Decimal(str(closing.json()["expected_value"])) == Decimal("900.00")

    won = _create_deal(client, auth["sdr"], _stage(pipeline, "Discovery"), title="Won early")
    client.patch(f"/api/crm/deals/{won['id']}", json={"status": "won"}, headers=auth["sdr"])
    blocked = client.post(
        f"/api/crm/deals/{won['id']}/stage",
        json={"stage_id": _stage(pipeline, "Closing")},
        headers=auth["sdr"],
    )
    assert blocked.status_code == 422
