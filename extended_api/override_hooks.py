"""Model lifecycle hooks that consume the ambient write overrides.

Two consumption points per record:

 - ``apply_pre_persist_overrides`` merges permitted values onto the
   in-memory record right after attribute assignment, so the regular flush
   writes them together with everything else.
 - ``apply_post_persist_overrides`` runs from the SQLAlchemy
   ``after_insert``/``after_update`` mapper events and forces the same values
   with a Core ``UPDATE``; the automatic timestamp listeners in ``models``
   have re-stamped them during the flush by then.

Both re-check ``is_admin`` on their own.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import event, update
from sqlalchemy.engine import Connection
from sqlalchemy.orm.attributes import set_committed_value

from .app_authz import Principal, current_principal, is_admin
from .audit_events import record_audit_event
from .metrics import OVERRIDES_FORCED, increment
from .models import Attachment, Issue, Journal
from .overrides import (
    ATTACHMENT_OVERRIDE_KEYS,
    ISSUE_OVERRIDE_KEYS,
    JOURNAL_OVERRIDE_KEYS,
    PRIMARY,
    SECONDARY,
    current_state,
    notifications_suppressed,
)

log = logging.getLogger("extended_api.overrides")

# model -> (role, allow-list)
OVERRIDE_MODELS: dict[type, tuple[str, tuple[str, ...]]] = {
    Issue: (PRIMARY, ISSUE_OVERRIDE_KEYS),
    Journal: (SECONDARY, JOURNAL_OVERRIDE_KEYS),
    Attachment: (PRIMARY, ATTACHMENT_OVERRIDE_KEYS),
}

_FORCING: ContextVar[frozenset[tuple[str, Any]]] = ContextVar("extended_api_forcing", default=frozenset())


def parse_override_time(value: Any) -> datetime | None:
    """ISO-8601 string/date/datetime -> naive UTC datetime, None when unparseable."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip() if value is not None else ""
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def _coerce_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def coerce_override_value(field: str, value: Any) -> Any:
    if field.endswith("_on"):
        return parse_override_time(value)
    if field.endswith("_id"):
        return _coerce_id(value)
    if isinstance(value, str) and not value.strip():
        return None
    return value


def permitted_overrides(overrides: Mapping[str, Any] | None, allowed: Iterable[str]) -> dict[str, Any]:
    """Allow-listed, present (non-null after coercion) values."""
    if not overrides:
        return {}
    cols: dict[str, Any] = {}
    for field in allowed:
        if field not in overrides:
            continue
        value = coerce_override_value(field, overrides[field])
        if value is not None:
            cols[field] = value
    return cols


def override_rule_for(record: Any) -> tuple[str, tuple[str, ...]] | None:
    for model, rule in OVERRIDE_MODELS.items():
        if isinstance(record, model):
            return rule
    return None


# --- Pre-persist ---
def apply_pre_persist_overrides(record: Any, principal: Principal | None = None) -> dict[str, Any]:
    """Merge the record's role overrides onto it before validation/flush."""
    applied: dict[str, Any] = {}
    rule = override_rule_for(record)
    state = current_state()
    if rule is not None and state is not None:
        role, allowed = rule
        overrides = state.overrides_for(role)
        if overrides and is_admin(principal if principal is not None else current_principal()):
            applied = permitted_overrides(overrides, allowed)
            for field, value in applied.items():
                setattr(record, field, value)
    if notifications_suppressed() and hasattr(record, "notify"):
        record.notify = False
    return applied


def assign_with_overrides(record: Any, attrs: Mapping[str, Any], principal: Principal | None = None) -> dict[str, Any]:
    """Plain attribute assignment followed by the pre-persist merge."""
    for field, value in attrs.items():
        setattr(record, field, value)
    return apply_pre_persist_overrides(record, principal)


# --- Forced write guard ---
def record_key(record: Any) -> tuple[str, Any]:
    return (record.__table__.name, getattr(record, "id", None))


def forced_write_active(record: Any) -> bool:
    return record_key(record) in _FORCING.get()


@contextmanager
def forced_write_in_progress(record: Any) -> Iterator[None]:
    token = _FORCING.set(_FORCING.get() | {record_key(record)})
    try:
        yield
    finally:
        _FORCING.reset(token)


def force_columns(connection: Connection, record: Any, cols: Mapping[str, Any]) -> None:
    """Column-level UPDATE bypassing attribute assignment and ORM events."""
    table = record.__table__
    stmt = update(table).where(table.c.id == record.id).values(**dict(cols))
    connection.execute(stmt)


# --- Post-persist ---
def apply_post_persist_overrides(
    connection: Connection, record: Any, principal: Principal | None = None
) -> dict[str, Any] | None:
    """Force override columns after a flush; returns the forced columns."""
    if forced_write_active(record):
        return None
    rule = override_rule_for(record)
    state = current_state()
    if rule is None or state is None:
        return None
    role, allowed = rule
    overrides = state.overrides_for(role)
    if overrides is None:
        return None
    principal = principal if principal is not None else current_principal()
    if not is_admin(principal):
        return None
    cols = {k: v for k, v in permitted_overrides(overrides, allowed).items() if k in record.__table__.c}
    if not cols:
        return None

    with forced_write_in_progress(record):
        force_columns(connection, record, cols)
        for field, value in cols.items():
            set_committed_value(record, field, value)

    increment(OVERRIDES_FORCED, {"table": record.__table__.name})
    record_audit_event(
        "override_forced",
        actor_user_id=principal.user_id,
        table=record.__table__.name,
        record_id=record.id,
        fields=sorted(cols),
    )
    log.info("forced override columns table=%s id=%s fields=%s", record.__table__.name, record.id, sorted(cols))
    return cols


def _after_save(mapper: Any, connection: Connection, target: Any) -> None:
    apply_post_persist_overrides(connection, target)


def register_override_hooks() -> None:
    """Attach the post-persist listeners once per process."""
    for model in OVERRIDE_MODELS:
        for name in ("after_insert", "after_update"):
            if not event.contains(model, name, _after_save):
                event.listen(model, name, _after_save)


__all__ = [
    "OVERRIDE_MODELS",
    "parse_override_time",
    "coerce_override_value",
    "permitted_overrides",
    "apply_pre_persist_overrides",
    "assign_with_overrides",
    "forced_write_active",
    "forced_write_in_progress",
    "force_columns",
    "apply_post_persist_overrides",
    "register_override_hooks",
]
