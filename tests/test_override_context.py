from __future__ import annotations

import threading

import pytest

from extended_api.app_authz import ANONYMOUS, Principal
from extended_api.overrides import (
    EMPTY_OVERRIDES,
    ISSUE_OVERRIDE_KEYS,
    JOURNAL_OVERRIDE_KEYS,
    PRIMARY,
    SECONDARY,
    current_overrides,
    current_state,
    extract_override_set,
    extract_secondary_overrides,
    notification_scope,
    notifications_suppressed,
    override_scope,
    suppress_notifications_requested,
    write_override_scope,
)

ADMIN = Principal(user_id=1, login="admin", admin=True)
USER = Principal(user_id=2, login="jsmith", admin=False)


def test_nothing_installed_outside_a_scope():
    assert current_state() is None
    assert current_overrides(PRIMARY) is None
    assert not notifications_suppressed()


def test_scope_restores_absent_state_even_on_error():
    with pytest.raises(RuntimeError):
        with override_scope(primary={"author_id": 3}, suppress_notifications=True):
            assert current_overrides(PRIMARY) == {"author_id": 3}
            raise RuntimeError("validation blew up")
    assert current_state() is None


def test_nested_scopes_inherit_and_restore():
    with override_scope(primary={"author_id": 3}, secondary={"user_id": 4}):
        with override_scope(secondary={}):
            assert current_overrides(PRIMARY) == {"author_id": 3}
            assert current_overrides(SECONDARY) == {}
        assert current_overrides(SECONDARY) == {"user_id": 4}


def test_suppression_is_sticky_and_restored():
    with override_scope(suppress_notifications=True):
        with override_scope(suppress_notifications=False):
            assert notifications_suppressed()
        assert notifications_suppressed()
    with override_scope():
        with notification_scope({"notify": "false"}):
            assert notifications_suppressed()
        assert not notifications_suppressed()


def test_installed_sets_are_read_only():
    with override_scope(primary={"author_id": 3}):
        with pytest.raises(TypeError):
            current_overrides(PRIMARY)["author_id"] = 9  # type: ignore[index]


def test_state_does_not_leak_across_threads():
    seen = {}

    def worker():
        seen["state"] = current_state()

    with override_scope(primary={"author_id": 3}):
        t = threading.Thread(target=worker)
        t.start()
        t.join()
    assert seen["state"] is None


def test_extract_override_set_filters_allow_list_and_nulls():
    raw = {"author_id": 5, "created_on": None, "subject": "x", "closed_on": "2020-01-01"}
    assert dict(extract_override_set(raw, ISSUE_OVERRIDE_KEYS)) == {"author_id": 5, "closed_on": "2020-01-01"}
    assert extract_override_set("not a mapping", ISSUE_OVERRIDE_KEYS) is EMPTY_OVERRIDES
    assert extract_override_set(None, ISSUE_OVERRIDE_KEYS) is EMPTY_OVERRIDES


def test_secondary_values_prefer_top_level_then_nested():
    top = {"journal": {"user_id": 7}, "issue": {"journal": {"user_id": 8}}}
    assert dict(extract_secondary_overrides(top, "issue", "journal", JOURNAL_OVERRIDE_KEYS)) == {"user_id": 7}
    nested = {"journal": {"notes": "n"}, "issue": {"journal": {"created_on": "2019-05-01"}}}
    assert dict(extract_secondary_overrides(nested, "issue", "journal", JOURNAL_OVERRIDE_KEYS)) == {
        "created_on": "2019-05-01"
    }
    assert extract_secondary_overrides({}, "issue", "journal", JOURNAL_OVERRIDE_KEYS) is EMPTY_OVERRIDES


@pytest.mark.parametrize(
    "params,expected",
    [
        ({"notify": False}, True),
        ({"notify": "false"}, True),
        ({"notify": "0"}, True),
        ({"send_notification": "off"}, True),
        ({"notifications": "No"}, True),
        ({"notify": True}, False),
        ({"notify": "true"}, False),
        ({"notify": None}, False),
        ({}, False),
        ("garbage", False),
    ],
)
def test_suppression_request_parsing(params, expected):
    assert suppress_notifications_requested(params) is expected


def test_admin_gets_extracted_overrides():
    params = {"issue": {"author_id": 3, "subject": "s", "journal": {"user_id": 4}}, "notify": False}
    with write_override_scope(
        params,
        primary_key="issue",
        primary_fields=ISSUE_OVERRIDE_KEYS,
        secondary_key="journal",
        secondary_fields=JOURNAL_OVERRIDE_KEYS,
        principal=ADMIN,
    ) as state:
        assert dict(state.primary) == {"author_id": 3}
        assert dict(state.secondary) == {"user_id": 4}
        assert state.suppress_notifications
    assert current_state() is None


@pytest.mark.parametrize("principal", [USER, ANONYMOUS])
def test_non_admin_gets_present_but_empty_sets(principal):
    params = {"issue": {"author_id": 3}, "journal": {"user_id": 4}, "notify": "false"}
    with write_override_scope(
        params,
        primary_key="issue",
        primary_fields=ISSUE_OVERRIDE_KEYS,
        secondary_key="journal",
        secondary_fields=JOURNAL_OVERRIDE_KEYS,
        principal=principal,
    ) as state:
        assert state.primary is not None and len(state.primary) == 0
        assert state.secondary is not None and len(state.secondary) == 0
        assert state.suppress_notifications


def test_primary_only_scope_leaves_secondary_inherited():
    with override_scope(secondary={"user_id": 4}):
        with write_override_scope(
            {"attachment": {"author_id": 9}},
            primary_key="attachment",
            primary_fields=("author_id", "created_on"),
            principal=ADMIN,
        ) as state:
            assert dict(state.primary) == {"author_id": 9}
            assert dict(state.secondary) == {"user_id": 4}
