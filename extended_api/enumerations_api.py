"""Enumerations API (issue priorities, time entry activities, document categories)."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, request, url_for
from sqlalchemy import func, select
from sqlalchemy import update as sql_update

from .api_helpers import ApiController, api_format, extended_only, head_no_content, render_api, request_params
from .app_authz import require_admin
from .db import get_session
from .errors import NotFoundError, ValidationError
from .http_errors import destroy_failed, record_in_use
from .models import Enumeration, Issue

bp = Blueprint("enumerations", __name__)
controller = ApiController(bp, accept_api_auth=("index", "show", "create", "update", "destroy"))

# collection key -> stored type
ENUMERATION_TYPES: dict[str, str] = {
    "issue_priorities": "IssuePriority",
    "time_entry_activities": "TimeEntryActivity",
    "document_categories": "DocumentCategory",
}


def enumeration_type(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    if value in ENUMERATION_TYPES:
        return ENUMERATION_TYPES[value]
    return value if value in ENUMERATION_TYPES.values() else None


def serialize_enumeration(e: Enumeration) -> dict[str, Any]:
    return {
        "id": e.id,
        "type": e.type,
        "name": e.name,
        "position": e.position,
        "is_default": e.is_default,
        "active": e.active,
    }


def _of_type(db, type_name: str) -> list[dict[str, Any]]:
    rows = db.execute(
        select(Enumeration).where(Enumeration.type == type_name).order_by(Enumeration.position, Enumeration.id)
    ).scalars().all()
    return [serialize_enumeration(e) for e in rows]


def _find(db, enumeration_id: int) -> Enumeration:
    e = db.get(Enumeration, enumeration_id)
    if e is None:
        raise NotFoundError("enumeration not found")
    return e


def _usage(db, e: Enumeration) -> int:
    if e.type != "IssuePriority":
        return 0
    return db.execute(select(func.count(Issue.id)).where(Issue.priority_id == e.id)).scalar() or 0


def _assign(db, e: Enumeration, raw: dict[str, Any]) -> None:
    if "name" in raw:
        e.name = str(raw["name"] or "").strip()
    if "active" in raw:
        e.active = raw["active"] is True or str(raw["active"]).strip().lower() in ("true", "1")
    if "is_default" in raw:
        e.is_default = raw["is_default"] is True or str(raw["is_default"]).strip().lower() in ("true", "1")
    if raw.get("position") not in (None, ""):
        try:
            e.position = int(raw["position"])
        except (TypeError, ValueError):
            raise ValidationError("Position is not a number") from None
    errors = []
    if not e.name:
        errors.append("Name cannot be blank")
    elif db.execute(
        select(Enumeration.id).where(Enumeration.type == e.type, Enumeration.name == e.name, Enumeration.id != e.id)
    ).first():
        errors.append("Name has already been taken")
    if errors:
        raise ValidationError(errors)
    if e.is_default:
        db.execute(
            sql_update(Enumeration)
            .where(Enumeration.type == e.type, Enumeration.id != e.id)
            .values(is_default=False)
        )


@extended_only
def _show(enumeration_id: int):
    db = get_session()
    try:
        return render_api({"enumeration": serialize_enumeration(_find(db, enumeration_id))})
    finally:
        db.close()


@bp.get("/enumerations.<format>")
@bp.get("/enumerations/<key>.<format>")
def index(format: str, key: str | None = None):
    if key is not None and key.isdigit():
        return _show(int(key))
    db = get_session()
    try:
        if key is None:
            return render_api({k: _of_type(db, t) for k, t in ENUMERATION_TYPES.items()})
        if key not in ENUMERATION_TYPES:
            raise NotFoundError("unknown enumeration type")
        return render_api({key: _of_type(db, ENUMERATION_TYPES[key])})
    finally:
        db.close()


def _payload() -> dict[str, Any]:
    raw = request_params().get("enumeration")
    return raw if isinstance(raw, dict) else {}


@bp.post("/enumerations.<format>")
@extended_only
@require_admin
def create(format: str):
    raw = _payload()
    type_name = enumeration_type(raw.get("type"))
    if type_name is None:
        raise ValidationError("Type is not included in the list")
    db = get_session()
    try:
        e = Enumeration(type=type_name, name="", active=True, is_default=False)
        if raw.get("position") in (None, ""):
            last = db.execute(select(func.max(Enumeration.position)).where(Enumeration.type == type_name)).scalar()
            e.position = (last or 0) + 1
        _assign(db, e, raw)
        db.add(e)
        db.commit()
        return render_api(
            {"enumeration": serialize_enumeration(e)},
            status=201,
            location=url_for("enumerations.index", key=str(e.id), format=api_format("json")),
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@bp.route("/enumerations/<int:enumeration_id>.<format>", methods=["PUT", "PATCH"])
@extended_only
@require_admin
def update(enumeration_id: int, format: str):
    db = get_session()
    try:
        e = _find(db, enumeration_id)
        _assign(db, e, _payload())
        db.commit()
        return render_api({"enumeration": serialize_enumeration(e)})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@bp.delete("/enumerations/<int:enumeration_id>.<format>")
@extended_only
@require_admin
def destroy(enumeration_id: int, format: str):
    db = get_session()
    try:
        e = _find(db, enumeration_id)
        in_use = _usage(db, e)
        if in_use:
            target_id = request.args.get("reassign_to_id") or request_params().get("reassign_to_id")
            target = None
            try:
                target = db.get(Enumeration, int(target_id)) if target_id not in (None, "") else None
            except (TypeError, ValueError):
                target = None
            if target is None or target.type != e.type or target.id == e.id:
                message = f"Unable to delete {e.name}: used by {in_use} issue(s), reassign_to_id is required"
                return record_in_use(message)
            db.execute(sql_update(Issue).where(Issue.priority_id == e.id).values(priority_id=target.id))
        try:
            db.delete(e)
            db.commit()
        except Exception as exc:
            db.rollback()
            return destroy_failed(exc)
        return head_no_content()
    finally:
        db.close()
