from __future__ import annotations

from extended_api.notifications import OUTBOX

EXT = "/extended_api"


def test_native_create_ignores_override_fields(client, admin_headers, seed):
    payload = {"issue": {"subject": "Native", "author_id": seed["other_id"], "created_on": "2012-01-01T00:00:00Z"}}
    resp = client.post("/issues.json", json=payload, headers=admin_headers)
    assert resp.status_code == 201
    issue = resp.get_json()["issue"]
    assert issue["author"]["id"] == seed["admin_id"]
    assert not issue["created_on"].startswith("2012")
    assert resp.headers["Location"].endswith(f"/issues/{issue['id']}.json")
    assert [e["event"] for e in OUTBOX] == ["issue_added"]


def test_extended_create_applies_admin_overrides(client, admin_headers, seed):
    payload = {
        "issue": {
            "subject": "Imported",
            "author_id": seed["other_id"],
            "created_on": "2012-01-01T10:00:00Z",
            "updated_on": "2012-01-02T10:00:00Z",
        }
    }
    resp = client.post(f"{EXT}/issues.json", json=payload, headers=admin_headers)
    assert resp.status_code == 201
    assert resp.headers["X-Extended-Api"] == "extended"
    issue = resp.get_json()["issue"]
    assert issue["author"]["id"] == seed["other_id"]
    assert issue["created_on"] == "2012-01-01T10:00:00Z"
    assert issue["updated_on"] == "2012-01-02T10:00:00Z"

    shown = client.get(f"/issues/{issue['id']}.json", headers=admin_headers).get_json()["issue"]
    assert shown["created_on"] == "2012-01-01T10:00:00Z"
    assert shown["author"]["id"] == seed["other_id"]


def test_extended_create_by_non_admin_drops_overrides(client, user_headers, seed):
    payload = {"issue": {"subject": "Sneaky", "author_id": seed["other_id"], "created_on": "2012-01-01T10:00:00Z"}}
    resp = client.post(f"{EXT}/issues.json", json=payload, headers=user_headers)
    assert resp.status_code == 201
    issue = resp.get_json()["issue"]
    assert issue["author"]["id"] == seed["user_id"]
    assert not issue["created_on"].startswith("2012")


def test_notify_false_suppresses_deliveries_for_anyone(client, user_headers):
    resp = client.post(f"{EXT}/issues.json", json={"issue": {"subject": "Quiet"}, "notify": False}, headers=user_headers)
    assert resp.status_code == 201
    assert list(OUTBOX) == []


def test_native_update_returns_no_content(client, admin_headers, create_issue):
    issue = create_issue()
    resp = client.put(f"/issues/{issue['id']}.json", json={"issue": {"notes": "hello"}}, headers=admin_headers)
    assert resp.status_code == 204
    assert resp.data == b""
    assert [e["event"] for e in OUTBOX] == ["issue_added", "issue_edited"]


def test_extended_update_returns_journal_with_overrides(client, admin_headers, create_issue, seed):
    issue = create_issue()
    payload = {
        "issue": {
            "notes": "Imported comment",
            "status_id": seed["status_closed"],
            "closed_on": "2013-06-01T12:00:00Z",
            "updated_on": "2013-06-01T12:00:00Z",
            "journal": {"user_id": seed["other_id"], "created_on": "2013-06-01T12:00:00Z"},
        },
        "notify": "false",
    }
    resp = client.put(f"{EXT}/issues/{issue['id']}.json", json=payload, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers["X-Extended-Api"] == "extended"
    journal = resp.get_json()["journal"]
    assert journal["user"]["id"] == seed["other_id"]
    assert journal["created_on"] == "2013-06-01T12:00:00Z"
    assert journal["notes"] == "Imported comment"
    assert journal["details"][0]["name"] == "status_id"

    shown = client.get(f"/issues/{issue['id']}.json?include=journals", headers=admin_headers).get_json()["issue"]
    assert shown["closed_on"] == "2013-06-01T12:00:00Z"
    assert shown["updated_on"] == "2013-06-01T12:00:00Z"
    assert shown["status"]["is_closed"] is True
    assert len(shown["journals"]) == 1
    # only the creation notification was delivered
    assert [e["event"] for e in OUTBOX] == ["issue_added"]


def test_top_level_journal_overrides_win(client, admin_headers, create_issue, seed):
    issue = create_issue()
    payload = {
        "issue": {"notes": "n", "journal": {"user_id": seed["admin_id"]}},
        "journal": {"user_id": seed["other_id"]},
    }
    resp = client.put(f"{EXT}/issues/{issue['id']}.json", json=payload, headers=admin_headers)
    assert resp.get_json()["journal"]["user"]["id"] == seed["other_id"]


def test_extended_update_without_changes_and_no_history_is_empty(client, admin_headers, create_issue):
    issue = create_issue()
    resp = client.put(f"{EXT}/issues/{issue['id']}.json", json={"issue": {}}, headers=admin_headers)
    assert resp.status_code == 204


def test_extended_update_without_changes_returns_latest_journal(client, admin_headers, create_issue):
    issue = create_issue()
    first = client.put(f"{EXT}/issues/{issue['id']}.json", json={"issue": {"notes": "first"}}, headers=admin_headers)
    second = client.put(f"{EXT}/issues/{issue['id']}.json", json={"issue": {"notes": "second"}}, headers=admin_headers)
    resp = client.put(f"{EXT}/issues/{issue['id']}.json", json={"issue": {}}, headers=admin_headers)
    assert resp.status_code == 200
    journal = resp.get_json()["journal"]
    assert journal["id"] == second.get_json()["journal"]["id"] != first.get_json()["journal"]["id"]
    assert journal["notes"] == "second"

    native = client.put(f"/issues/{issue['id']}.json", json={"issue": {}}, headers=admin_headers)
    assert native.status_code == 204


def test_validation_errors_are_problem_documents(client, admin_headers):
    resp = client.post("/issues.json", json={"issue": {"subject": ""}}, headers=admin_headers)
    assert resp.status_code == 422
    assert resp.mimetype == "application/problem+json"
    body = resp.get_json()
    assert "Subject cannot be blank" in body["errors"]
    assert body["request_id"] == resp.headers["X-Request-Id"]


def test_writes_require_an_api_key(client):
    resp = client.post("/issues.json", json={"issue": {"subject": "x"}})
    assert resp.status_code == 401
    resp = client.post(f"{EXT}/issues.json?key=wrong", json={"issue": {"subject": "x"}})
    assert resp.status_code == 401


def test_key_query_parameter_authenticates(client):
    resp = client.post("/issues.json?key=user-api-key", json={"issue": {"subject": "via key"}})
    assert resp.status_code == 201


def test_index_and_xml_rendering(client, admin_headers, create_issue):
    create_issue("First")
    create_issue("Second")
    body = client.get("/issues.json?limit=1", headers=admin_headers).get_json()
    assert body["total_count"] == 2
    assert len(body["issues"]) == 1
    assert body["issues"][0]["subject"] == "Second"

    resp = client.get(f"{EXT}/issues.xml", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.mimetype == "application/xml"
    assert b"<subject>First</subject>" in resp.data


def test_destroy(client, admin_headers, create_issue):
    issue = create_issue()
    resp = client.delete(f"{EXT}/issues/{issue['id']}.json", headers=admin_headers)
    assert resp.status_code == 204
    assert client.get(f"/issues/{issue['id']}.json").status_code == 404


def test_extended_destroy_failure_becomes_422(client, admin_headers, create_issue, monkeypatch):
    from sqlalchemy.orm import Session

    issue = create_issue()

    def broken_delete(self, obj):
        raise RuntimeError("Issue is locked")

    monkeypatch.setattr(Session, "delete", broken_delete)
    resp = client.delete(f"{EXT}/issues/{issue['id']}.json", headers=admin_headers)
    assert resp.status_code == 422
    body = resp.get_json()
    assert body["detail"] == "Issue is locked"
    assert body["errors"] == ["Issue is locked"]


def test_extended_xml_create_forces_admin_overrides(client, admin_headers, seed):
    import xml.etree.ElementTree as ET

    body = (
        "<issue>"
        "<subject>From XML</subject>"
        f"<author_id>{seed['other_id']}</author_id>"
        "<created_on>2012-03-04T05:06:07Z</created_on>"
        "</issue>"
    )
    resp = client.post(
        f"{EXT}/issues.xml",
        data=body,
        headers={**admin_headers, "Content-Type": "application/xml"},
    )
    assert resp.status_code == 201
    assert resp.mimetype == "application/xml"
    issue_id = int(ET.fromstring(resp.data).findtext("id"))

    shown = client.get(f"/issues/{issue_id}.json", headers=admin_headers).get_json()["issue"]
    assert shown["subject"] == "From XML"
    assert shown["author"]["id"] == seed["other_id"]
    assert shown["created_on"] == "2012-03-04T05:06:07Z"


def test_native_xml_create_reads_attributes_but_not_overrides(client, admin_headers, seed):
    import xml.etree.ElementTree as ET

    body = f"<issue><subject>Native XML</subject><author_id>{seed['other_id']}</author_id></issue>"
    resp = client.post("/issues.xml", data=body, headers={**admin_headers, "Content-Type": "application/xml"})
    assert resp.status_code == 201
    issue = ET.fromstring(resp.data)
    assert issue.findtext("subject") == "Native XML"
    assert issue.findtext("author/id") == str(seed["admin_id"])
