from __future__ import annotations

import hashlib

from extended_api.attachments_api import nested_query_params

EXT = "/extended_api"
CONTENT = b"%PDF-1.4 fake"


def _upload(client, url, headers):
    return client.post(url, data=CONTENT, headers={**headers, "Content-Type": "application/octet-stream"})


def test_native_upload(client, user_headers, seed):
    resp = _upload(client, "/uploads.json?filename=manual.pdf", user_headers)
    assert resp.status_code == 201
    up = resp.get_json()["upload"]
    assert up["filename"] == "manual.pdf"
    assert up["filesize"] == len(CONTENT)
    assert up["digest"] == hashlib.sha256(CONTENT).hexdigest()
    assert up["token"].endswith("." + up["digest"])
    assert up["author_id"] == seed["user_id"]


def test_extended_upload_keeps_original_author_and_date(client, admin_headers, seed):
    url = (
        f"{EXT}/uploads.json?filename=old.pdf"
        f"&attachment[author_id]={seed['other_id']}&attachment[created_on]=2011-11-11T11:11:11Z"
    )
    resp = _upload(client, url, admin_headers)
    assert resp.status_code == 201
    assert resp.headers["X-Extended-Api"] == "extended"
    up = resp.get_json()["upload"]
    assert up["author_id"] == seed["other_id"]
    assert up["created_on"] == "2011-11-11T11:11:11Z"


def test_extended_upload_by_non_admin_ignores_overrides(client, user_headers, seed):
    url = f"{EXT}/uploads.json?filename=a.txt&attachment[author_id]={seed['other_id']}"
    up = _upload(client, url, user_headers).get_json()["upload"]
    assert up["author_id"] == seed["user_id"]


def test_upload_validation(client, user_headers):
    resp = _upload(client, "/uploads.json", user_headers)
    assert resp.status_code == 422
    assert resp.get_json()["errors"] == ["Filename cannot be blank"]
    resp = client.post("/uploads.json?filename=x", data=b"", headers=user_headers)
    assert resp.get_json()["errors"] == ["File cannot be empty"]


def test_upload_requires_login(client):
    resp = client.post(f"{EXT}/uploads.json?filename=a.txt", data=CONTENT)
    assert resp.status_code == 401


def test_nested_query_params():
    params = nested_query_params({"attachment[author_id]": "3", "attachment[created_on]": "2011", "notify": "0"})
    assert params == {"attachment": {"author_id": "3", "created_on": "2011"}, "notify": "0"}
