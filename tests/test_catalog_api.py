from __future__ import annotations

import pytest

EXT = "/extended_api"


@pytest.mark.parametrize("collection", ["issue_statuses", "trackers", "roles"])
def test_index_is_native(client, collection):
    resp = client.get(f"/{collection}.json")
    assert resp.status_code == 200
    assert collection in resp.get_json()
    assert "X-Extended-Api" not in resp.headers


def test_show_is_extended_only(client, seed):
    native = client.get(f"/trackers/{seed['tracker_bug']}.json")
    assert native.status_code == 404
    assert native.mimetype == "application/problem+json"
    ext = client.get(f"{EXT}/trackers/{seed['tracker_bug']}.json")
    assert ext.status_code == 200
    assert ext.get_json()["tracker"]["name"] == "Bug"


def test_status_crud(client, admin_headers):
    resp = client.post(
        f"{EXT}/issue_statuses.json",
        json={"issue_status": {"name": "Resolved", "is_closed": "1", "position": "3"}},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    status = resp.get_json()["issue_status"]
    assert status["is_closed"] is True
    assert status["position"] == 3

    resp = client.put(
        f"{EXT}/issue_statuses/{status['id']}.json",
        json={"issue_status": {"name": "Done", "default_done_ratio": 100}},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.get_json()["issue_status"]["name"] == "Done"

    assert client.delete(f"{EXT}/issue_statuses/{status['id']}.json", headers=admin_headers).status_code == 204
    names = [s["name"] for s in client.get("/issue_statuses.json").get_json()["issue_statuses"]]
    assert names == ["New", "Closed"]


def test_duplicate_name_is_rejected(client, admin_headers):
    resp = client.post(f"{EXT}/trackers.json", json={"tracker": {"name": "Bug"}}, headers=admin_headers)
    assert resp.status_code == 422
    assert resp.get_json()["errors"] == ["Name has already been taken"]


def test_writes_need_an_administrator(client, user_headers):
    resp = client.post(f"{EXT}/roles.json", json={"role": {"name": "Manager"}}, headers=user_headers)
    assert resp.status_code == 403
    resp = client.post(f"{EXT}/roles.json", json={"role": {"name": "Manager"}})
    assert resp.status_code == 401


def test_native_writes_do_not_exist(client, admin_headers):
    resp = client.post("/roles.json", json={"role": {"name": "Manager"}}, headers=admin_headers)
    assert resp.status_code == 404


def test_role_permissions_roundtrip(client, admin_headers):
    resp = client.post(
        f"{EXT}/roles.json",
        json={"role": {"name": "Developer", "permissions": ["add_issues", "edit_issues"], "assignable": False}},
        headers=admin_headers,
    )
    role = resp.get_json()["role"]
    assert role["permissions"] == ["add_issues", "edit_issues"]
    assert role["assignable"] is False


def test_tracker_in_use_cannot_be_deleted(client, admin_headers, create_issue, seed):
    create_issue()
    resp = client.delete(f"{EXT}/trackers/{seed['tracker_bug']}.json", headers=admin_headers)
    assert resp.status_code == 422
    body = resp.get_json()
    assert body["detail"].startswith("Unable to delete Bug")
    assert resp.headers["X-Extended-Api"] == "extended"


def test_missing_record_is_404_problem(client, admin_headers):
    resp = client.put(f"{EXT}/trackers/999.json", json={"tracker": {"name": "x"}}, headers=admin_headers)
    assert resp.status_code == 404
    assert resp.get_json()["detail"] == "tracker not found"
