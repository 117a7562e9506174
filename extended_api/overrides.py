"""Ambient write overrides for extended API writes.

An administrator importing history from another tracker needs to keep the
original author and timestamps of issues and journals, and usually wants the
import to stay silent. Those values travel from the request body to the
model lifecycle hooks through a request-scoped ``ContextVar``:

    with write_override_scope(params, primary_key="issue",
                              primary_fields=ISSUE_OVERRIDE_KEYS,
                              secondary_key="journal",
                              secondary_fields=JOURNAL_OVERRIDE_KEYS):
        ...  # assign, validate, flush, commit

``override_scope`` always restores the exact previous state (including
"nothing installed") on exit, so scopes nest and never leak into the next
request handled by the same thread.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from .app_authz import Principal, current_principal, is_admin

log = logging.getLogger("extended_api.overrides")

PRIMARY = "primary"
SECONDARY = "secondary"
ROLES = (PRIMARY, SECONDARY)

ISSUE_OVERRIDE_KEYS: tuple[str, ...] = ("author_id", "created_on", "updated_on", "closed_on")
JOURNAL_OVERRIDE_KEYS: tuple[str, ...] = ("user_id", "created_on", "updated_on", "updated_by_id")
ATTACHMENT_OVERRIDE_KEYS: tuple[str, ...] = ("author_id", "created_on")

NOTIFY_KEYS: tuple[str, ...] = ("notify", "notifications", "send_notification", "send_notifications")
SUPPRESS_VALUES = frozenset({"false", "0", "off", "no"})

OverrideSet = Mapping[str, Any]
EMPTY_OVERRIDES: OverrideSet = MappingProxyType({})


@dataclass(frozen=True)
class OverrideState:
    primary: OverrideSet | None = None
    secondary: OverrideSet | None = None
    suppress_notifications: bool = False

    def overrides_for(self, role: str) -> OverrideSet | None:
        if role == PRIMARY:
            return self.primary
        if role == SECONDARY:
            return self.secondary
        return None


_STATE: ContextVar[OverrideState | None] = ContextVar("extended_api_override_state", default=None)


def current_state() -> OverrideState | None:
    """Installed state, or None when no write operation is in progress."""
    return _STATE.get()


def current_overrides(role: str) -> OverrideSet | None:
    state = _STATE.get()
    if state is None:
        return None
    return state.overrides_for(role)


def notifications_suppressed() -> bool:
    state = _STATE.get()
    return bool(state is not None and state.suppress_notifications)


def freeze(values: Mapping[str, Any] | None) -> OverrideSet:
    if not values:
        return EMPTY_OVERRIDES
    return MappingProxyType(dict(values))


@contextmanager
def override_scope(
    *,
    primary: Mapping[str, Any] | None = None,
    secondary: Mapping[str, Any] | None = None,
    suppress_notifications: bool = False,
) -> Iterator[OverrideState]:
    """Install overrides for the duration of the block.

    ``None`` for a role keeps whatever an enclosing scope installed; a mapping
    (empty included) replaces it. Suppression is sticky: an inner scope can
    switch it on but never off.
    """
    previous = _STATE.get()
    base = previous or OverrideState()
    state = OverrideState(
        primary=freeze(primary) if primary is not None else base.primary,
        secondary=freeze(secondary) if secondary is not None else base.secondary,
        suppress_notifications=bool(suppress_notifications or base.suppress_notifications),
    )
    token = _STATE.set(state)
    try:
        yield state
    finally:
        _STATE.reset(token)


# --- Extraction ---
def _as_mapping(raw: Any) -> Mapping[str, Any] | None:
    if isinstance(raw, Mapping):
        return raw
    to_dict = getattr(raw, "to_dict", None)
    if callable(to_dict):
        try:
            value = to_dict()
        except Exception:  # noqa: BLE001
            return None
        return value if isinstance(value, Mapping) else None
    return None


def extract_override_set(raw: Any, allowed: Iterable[str]) -> OverrideSet:
    """Slice ``raw`` down to the allow-listed, non-null keys.

    Malformed input (not a mapping) yields the empty set.
    """
    data = _as_mapping(raw)
    if data is None:
        return EMPTY_OVERRIDES
    picked = {key: data[key] for key in allowed if key in data and data[key] is not None}
    return freeze(picked)


def extract_primary_overrides(params: Any, key: str, allowed: Iterable[str]) -> OverrideSet:
    data = _as_mapping(params)
    if data is None:
        return EMPTY_OVERRIDES
    return extract_override_set(data.get(key), allowed)


def extract_secondary_overrides(params: Any, primary_key: str, key: str, allowed: Iterable[str]) -> OverrideSet:
    """Secondary values come from ``params[key]`` or ``params[primary_key][key]``.

    The first candidate with at least one eligible field wins.
    """
    data = _as_mapping(params)
    if data is None:
        return EMPTY_OVERRIDES
    allowed = tuple(allowed)
    candidates = [data.get(key)]
    nested = _as_mapping(data.get(primary_key))
    if nested is not None:
        candidates.append(nested.get(key))
    for raw in candidates:
        picked = extract_override_set(raw, allowed)
        if picked:
            return picked
    return EMPTY_OVERRIDES


def suppress_notifications_requested(params: Any) -> bool:
    """True when the body asks for silence under any notify alias."""
    data = _as_mapping(params)
    if data is None:
        return False
    key = next((k for k in NOTIFY_KEYS if k in data), None)
    if key is None:
        return False
    value = data.get(key)
    if value is False:
        return True
    if value is None or value is True:
        return False
    return str(value).strip().lower() in SUPPRESS_VALUES


# --- Orchestration ---
@contextmanager
def write_override_scope(
    params: Any,
    *,
    primary_key: str,
    primary_fields: Iterable[str],
    secondary_key: str | None = None,
    secondary_fields: Iterable[str] | None = None,
    principal: Principal | None = None,
) -> Iterator[OverrideState]:
    """Extract, authorize and install overrides for one write action.

    Non-administrators get present-but-empty override sets so hooks observe
    "nothing to apply" instead of unchecked input.
    """
    principal = principal if principal is not None else current_principal()
    allowed = is_admin(principal)

    primary = extract_primary_overrides(params, primary_key, primary_fields) if allowed else EMPTY_OVERRIDES
    secondary: OverrideSet | None = None
    if secondary_key is not None:
        secondary = (
            extract_secondary_overrides(params, primary_key, secondary_key, secondary_fields or ())
            if allowed
            else EMPTY_OVERRIDES
        )
    suppress = suppress_notifications_requested(params)
    if primary or secondary:
        log.info(
            "installing write overrides user_id=%s primary=%s secondary=%s",
            principal.user_id,
            sorted(primary),
            sorted(secondary or ()),
        )
    with override_scope(primary=primary, secondary=secondary, suppress_notifications=suppress) as state:
        yield state


@contextmanager
def notification_scope(params: Any) -> Iterator[OverrideState]:
    """Suppression only; overrides installed by an outer scope stay visible."""
    with override_scope(suppress_notifications=suppress_notifications_requested(params)) as state:
        yield state


__all__ = [
    "PRIMARY",
    "SECONDARY",
    "ISSUE_OVERRIDE_KEYS",
    "JOURNAL_OVERRIDE_KEYS",
    "ATTACHMENT_OVERRIDE_KEYS",
    "NOTIFY_KEYS",
    "EMPTY_OVERRIDES",
    "OverrideState",
    "current_state",
    "current_overrides",
    "notifications_suppressed",
    "override_scope",
    "extract_override_set",
    "extract_primary_overrides",
    "extract_secondary_overrides",
    "suppress_notifications_requested",
    "write_override_scope",
    "notification_scope",
]
