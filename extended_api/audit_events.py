"""In-process audit trail.

Forced override writes, problem responses and unhandled incidents land here so
administrators can trace imported history and failed calls. The trail is a
bounded list; the oldest slice is dropped once it is full.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

from flask import g, has_request_context

_AUDIT_TRAIL: list[dict[str, Any]] = []
_TRAIL_LIMIT = 500


@dataclass
class AuditEvent:
    ts: int
    action: str
    actor_user_id: int | None = None
    request_id: str | None = None
    extended_api: str | None = None
    meta: dict[str, Any] | None = None


def record_audit_event(action: str, actor_user_id: int | None = None, **meta: Any) -> AuditEvent:
    request_id = mode = None
    if has_request_context():
        request_id = getattr(g, "request_id", None)
        mode = getattr(g, "extended_api_mode", None)
    ev = AuditEvent(int(time.time()), action, actor_user_id, request_id, mode, meta or None)
    if len(_AUDIT_TRAIL) >= _TRAIL_LIMIT:
        del _AUDIT_TRAIL[: _TRAIL_LIMIT // 10]
    _AUDIT_TRAIL.append(asdict(ev))
    return ev


def list_audit_events(action: str | None = None) -> list[dict[str, Any]]:
    if action is None:
        return list(_AUDIT_TRAIL)
    return [e for e in _AUDIT_TRAIL if e["action"] == action]


def clear_audit_events() -> None:
    _AUDIT_TRAIL.clear()


__all__ = ["AuditEvent", "record_audit_event", "list_audit_events", "clear_audit_events"]
