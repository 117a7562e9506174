from __future__ import annotations

EXT = "/extended_api"


def test_index_lists_all_sets(client):
    body = client.get("/enumerations.json").get_json()
    assert set(body) == {"issue_priorities", "time_entry_activities", "document_categories"}
    assert [p["name"] for p in body["issue_priorities"]] == ["Normal", "High"]


def test_index_by_type_key(client):
    resp = client.get("/enumerations/issue_priorities.json")
    assert resp.status_code == 200
    assert list(resp.get_json()) == ["issue_priorities"]
    assert client.get("/enumerations/colours.json").status_code == 404


def test_numeric_key_shows_one_enumeration_on_the_extended_surface(client, seed):
    resp = client.get(f"{EXT}/enumerations/{seed['priority_high']}.json")
    assert resp.status_code == 200
    assert resp.get_json()["enumeration"]["name"] == "High"
    assert client.get(f"/enumerations/{seed['priority_high']}.json").status_code == 404


def test_create_update_and_default_switch(client, admin_headers, seed):
    resp = client.post(
        f"{EXT}/enumerations.json",
        json={"enumeration": {"type": "time_entry_activities", "name": "Design"}},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    created = resp.get_json()["enumeration"]
    assert created["type"] == "TimeEntryActivity"
    assert created["position"] == 1

    resp = client.put(
        f"{EXT}/enumerations/{seed['priority_high']}.json",
        json={"enumeration": {"is_default": True}},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    priorities = client.get("/enumerations/issue_priorities.json").get_json()["issue_priorities"]
    assert [p["name"] for p in priorities if p["is_default"]] == ["High"]


def test_create_rejects_unknown_type(client, admin_headers):
    resp = client.post(f"{EXT}/enumerations.json", json={"enumeration": {"type": "Colour", "name": "Red"}},
                       headers=admin_headers)
    assert resp.status_code == 422


def test_destroy_in_use_requires_reassignment(client, admin_headers, create_issue, seed):
    issue = create_issue(priority_id=seed["priority_normal"])
    url = f"{EXT}/enumerations/{seed['priority_normal']}.json"
    resp = client.delete(url, headers=admin_headers)
    assert resp.status_code == 422
    assert "reassign_to_id" in resp.get_json()["detail"]

    resp = client.delete(f"{url}?reassign_to_id={seed['priority_high']}", headers=admin_headers)
    assert resp.status_code == 204
    shown = client.get(f"/issues/{issue['id']}.json").get_json()["issue"]
    assert shown["priority"]["id"] == seed["priority_high"]


def test_destroy_unused(client, admin_headers, seed):
    resp = client.delete(f"{EXT}/enumerations/{seed['priority_high']}.json", headers=admin_headers)
    assert resp.status_code == 204
