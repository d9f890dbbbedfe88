from __future__ import annotations

import inspect

from fastapi.testclient import TestClient

from app import create_app
from modules.family_inventory import api as family_api
from modules.family_inventory.repo import InMemoryInventoryRepo

from conftest import FAMILY

BASE = f"/api/v1/families/{FAMILY}"
ARNICA = {"name": "Arnica", "potency": "30C", "company": "Boiron", "location": "Kitchen",
          "quantity": 2, "updated_by": "alice"}


def make_client(test_settings) -> TestClient:
    return TestClient(create_app(test_settings, InMemoryInventoryRepo()))


def test_health(test_settings) -> None:
    client = make_client(test_settings)
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert client.get("/api/v1/families/health").status_code == 200


def test_create_and_join_family(test_settings) -> None:
    client = make_client(test_settings)
    res = client.post("/api/v1/families", json={"member_name": "Alice"})
    assert res.status_code == 200
    code = res.json()["family_id"]
    assert len(code) == 8

    res = client.post("/api/v1/families/join", json={"familyId": code.lower(), "memberName": "Bob"})
    assert res.status_code == 200
    assert res.json()["family_id"] == code

    assert client.post("/api/v1/families/join", json={"family_id": "nope", "member_name": "Bob"}).status_code == 404
    assert client.post("/api/v1/families", json={"member_name": "  "}).status_code == 400


def test_malformed_family_code_in_path(test_settings) -> None:
    client = make_client(test_settings)
    res = client.get("/api/v1/families/short/items")
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid family code"


def test_item_lifecycle(test_settings) -> None:
    client = make_client(test_settings)

    res = client.post(f"{BASE}/items", json=ARNICA)
    assert res.status_code == 201
    created = res.json()
    assert created["family_id"] == FAMILY

    res = client.put(f"{BASE}/items/{created['id']}", json={"quantity": 5, "bottleSize": "4g", "updated_by": "alice"})
    assert res.status_code == 200
    assert res.json()["quantity"] == 5
    assert res.json()["bottle_size"] == "4g"

    items = client.get(f"{BASE}/items").json()
    assert [i["name"] for i in items] == ["Arnica"]

    res = client.delete(f"{BASE}/items/{created['id']}", params={"updated_by": "alice"})
    assert res.status_code == 200
    assert client.get(f"{BASE}/items").json() == []


def test_add_duplicate_returns_409_and_merge_resolves_it(test_settings) -> None:
    client = make_client(test_settings)
    existing = client.post(f"{BASE}/items", json=ARNICA).json()

    candidate = dict(ARNICA, name="Arnica Montana", quantity=1)
    res = client.post(f"{BASE}/items", json=candidate)
    assert res.status_code == 409
    duplicate = res.json()["duplicate"]
    assert duplicate["existing"]["id"] == existing["id"]
    assert duplicate["candidate"]["name"] == "Arnica Montana"

    res = client.post(f"{BASE}/items/resolve", json={
        "existing_id": existing["id"],
        "candidate": candidate,
        "resolution": "merge",
        "updated_by": "alice",
    })
    assert res.status_code == 200
    assert res.json()["status"] == "merged"
    assert res.json()["item"]["quantity"] == 3
    assert len(client.get(f"{BASE}/items").json()) == 1


def test_skip_resolution(test_settings) -> None:
    client = make_client(test_settings)
    existing = client.post(f"{BASE}/items", json=ARNICA).json()
    res = client.post(f"{BASE}/items/resolve", json={
        "existing_id": existing["id"],
        "candidate": dict(ARNICA, name="Arnica Montana"),
        "resolution": "skip",
        "updated_by": "alice",
    })
    assert res.json() == {"status": "skipped"}


def test_invalid_item_is_rejected(test_settings) -> None:
    client = make_client(test_settings)
    assert client.post(f"{BASE}/items", json=dict(ARNICA, name="   ")).status_code == 422
    assert client.post(f"{BASE}/items", json=dict(ARNICA, quantity=-1)).status_code == 422


def test_update_without_fields_is_a_validation_error(test_settings) -> None:
    client = make_client(test_settings)
    created = client.post(f"{BASE}/items", json=ARNICA).json()
    res = client.put(f"{BASE}/items/{created['id']}", json={"updated_by": "alice"})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "validation_error"


def test_unknown_item_is_not_found(test_settings) -> None:
    client = make_client(test_settings)
    res = client.put(f"{BASE}/items/999", json={"quantity": 1, "updated_by": "alice"})
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"

    res = client.delete(f"{BASE}/items/999", params={"updated_by": "alice"})
    assert res.status_code == 404


def test_items_are_scoped_to_their_family(test_settings) -> None:
    client = make_client(test_settings)
    created = client.post(f"{BASE}/items", json=ARNICA).json()

    other = "/api/v1/families/ZZZ99999"
    assert client.get(f"{other}/items").json() == []
    assert client.delete(f"{other}/items/{created['id']}", params={"updated_by": "eve"}).status_code == 404
    assert len(client.get(f"{BASE}/items").json()) == 1


def test_members_empty_without_live_connections(test_settings) -> None:
    client = make_client(test_settings)
    res = client.get(f"{BASE}/members")
    assert res.status_code == 200
    assert res.json() == {"family_id": FAMILY, "members": [], "count": 0}


def test_members_endpoint_runs_on_the_event_loop() -> None:
    # sync endpoints run in a worker thread, away from the registry's loop
    assert inspect.iscoroutinefunction(family_api.list_members)
