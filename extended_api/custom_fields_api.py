"""Custom fields API.

Index is native. Everything else is extended-only and goes through the
attribute policy: the payload is narrowed to the assignable attributes of the
field's (type, format) and the response shows exactly its displayable ones.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, url_for
from sqlalchemy import select

from .api_helpers import ApiController, api_format, extended_only, head_no_content, render_api, request_params
from .app_authz import require_admin
from .custom_fields.attribute_policy import AttributePolicy
from .custom_fields.formats import DEPENDING_CUSTOM_FIELD_FORMATS, CustomFieldType
from .db import get_session
from .errors import NotFoundError, ValidationError
from .http_errors import destroy_failed
from .models import CustomField, CustomFieldEnumeration, Project, Role, Tracker

bp = Blueprint("custom_fields", __name__)
controller = ApiController(bp, accept_api_auth=("index", "show", "create", "update", "destroy"))

POLICY_EXTENSION = "extended_api.attribute_policy"
LIST_FORMATS = frozenset({"list", "depending_list"})
ENUMERATION_FORMATS = frozenset({"enumeration", "depending_enumeration"})
_ID_LISTS = frozenset({"role_ids", "tracker_ids", "project_ids", "group_ids"})
_INTEGERS = frozenset({"position", "min_length", "max_length", "parent_custom_field_id"})


def attribute_policy() -> AttributePolicy:
    policy = current_app.extensions.get(POLICY_EXTENSION)
    if policy is None:
        extensions = DEPENDING_CUSTOM_FIELD_FORMATS if current_app.config.get("DEPENDING_CUSTOM_FIELDS") else None
        policy = current_app.extensions[POLICY_EXTENSION] = AttributePolicy(extensions)
    return policy


def _named_rows(db, model, ids: list[int] | None) -> list[dict[str, Any]]:
    if not ids:
        return []
    rows = db.execute(select(model).where(model.id.in_(ids)).order_by(model.id)).scalars().all()
    return [{"id": r.id, "name": r.name} for r in rows]


def serialize_custom_field(db, cf: CustomField) -> dict[str, Any]:
    shown = attribute_policy().resolve(cf.type, cf.field_format).displayable
    data: dict[str, Any] = {}
    for attr in sorted(shown, key=lambda a: (a not in ("id", "name"), a)):
        if attr == "roles":
            data[attr] = _named_rows(db, Role, cf.role_ids)
        elif attr == "trackers":
            data[attr] = _named_rows(db, Tracker, cf.tracker_ids)
        elif attr == "projects":
            data[attr] = _named_rows(db, Project, cf.project_ids)
        elif attr == "customized_type":
            kind = CustomFieldType.parse(cf.type)
            data[attr] = kind.customized_type if kind else None
        elif attr == "enumerations":
            data[attr] = [
                {"id": e.id, "name": e.name, "active": e.active, "position": e.position} for e in cf.enumerations
            ]
        else:
            data[attr] = cf.read_attribute(attr)
    return data


def _coerce(attr: str, value: Any) -> Any:
    if attr in _ID_LISTS:
        items = value if isinstance(value, list) else [value]
        out = []
        for item in items:
            try:
                out.append(int(item))
            except (TypeError, ValueError):
                continue
        return out
    if attr in _INTEGERS and value not in (None, ""):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{attr.replace('_', ' ').capitalize()} is not a number") from None
    if attr == "possible_values":
        if isinstance(value, str):
            value = value.splitlines()
        elif value is None:
            value = []
        elif not isinstance(value, (list, tuple)):
            value = [value]
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return value


def _sync_enumerations(cf: CustomField, raw: Any) -> None:
    """Create or update members from the payload; absent members are kept."""
    if not isinstance(raw, list):
        return
    existing = {str(e.id): e for e in cf.enumerations}
    for index, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            continue
        member = existing.get(str(item.get("id")))
        if member is None:
            if not str(item.get("name") or "").strip():
                continue
            member = CustomFieldEnumeration(name=str(item["name"]).strip(), position=len(cf.enumerations) + 1)
            cf.enumerations.append(member)
        if "name" in item and str(item["name"]).strip():
            member.name = str(item["name"]).strip()
        if "active" in item:
            member.active = item["active"] is True or str(item["active"]).strip().lower() in ("true", "1")
        if "position" in item:
            try:
                member.position = int(item["position"])
            except (TypeError, ValueError):
                member.position = index


def _validate(db, cf: CustomField) -> None:
    errors = []
    policy = attribute_policy()
    if not (cf.name or "").strip():
        errors.append("Name cannot be blank")
    elif db.execute(
        select(CustomField.id).where(CustomField.name == cf.name, CustomField.type == cf.type, CustomField.id != cf.id)
    ).first():
        errors.append("Name has already been taken")
    if CustomFieldType.parse(cf.type) is None:
        errors.append("Type is not included in the list")
    if not policy.known_format(cf.field_format):
        errors.append("Format is not included in the list")
    if cf.field_format in LIST_FORMATS and not cf.possible_values:
        errors.append("Possible values cannot be blank")
    if errors:
        raise ValidationError(errors)


def _assign(db, cf: CustomField, raw: dict[str, Any]) -> None:
    attrs = attribute_policy().filter_assignable(cf.type, cf.field_format, raw)
    attrs.pop("field_format", None)  # fixed at creation
    for attr, value in attrs.items():
        cf.write_attribute(attr, _coerce(attr, value))
    if cf.field_format in ENUMERATION_FORMATS:
        _sync_enumerations(cf, raw.get("enumerations"))
    _validate(db, cf)


def _find(db, custom_field_id: int) -> CustomField:
    cf = db.get(CustomField, custom_field_id)
    if cf is None:
        raise NotFoundError("custom field not found")
    return cf


def _payload() -> dict[str, Any]:
    raw = request_params().get("custom_field")
    return raw if isinstance(raw, dict) else {}


@bp.get("/custom_fields.<format>")
def index(format: str):
    db = get_session()
    try:
        rows = db.execute(select(CustomField).order_by(CustomField.type, CustomField.position, CustomField.id)).scalars().all()
        return render_api({"custom_fields": [serialize_custom_field(db, cf) for cf in rows]})
    finally:
        db.close()


@bp.get("/custom_fields/<int:custom_field_id>.<format>")
@extended_only
def show(custom_field_id: int, format: str):
    db = get_session()
    try:
        return render_api({"custom_field": serialize_custom_field(db, _find(db, custom_field_id))})
    finally:
        db.close()


@bp.post("/custom_fields.<format>")
@extended_only
@require_admin
def create(format: str):
    raw = _payload()
    db = get_session()
    try:
        type_name = raw.get("type") if isinstance(raw.get("type"), str) else ""
        field_format = raw.get("field_format") if isinstance(raw.get("field_format"), str) else ""
        cf = CustomField(type=type_name, field_format=field_format, name="", possible_values=[], format_store={})
        _assign(db, cf, raw)
        db.add(cf)
        db.commit()
        return render_api(
            {"custom_field": serialize_custom_field(db, cf)},
            status=201,
            location=url_for("custom_fields.show", custom_field_id=cf.id, format=api_format("json")),
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@bp.route("/custom_fields/<int:custom_field_id>.<format>", methods=["PUT", "PATCH"])
@extended_only
@require_admin
def update(custom_field_id: int, format: str):
    db = get_session()
    try:
        cf = _find(db, custom_field_id)
        _assign(db, cf, _payload())
        db.commit()
        return render_api({"custom_field": serialize_custom_field(db, cf)})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@bp.delete("/custom_fields/<int:custom_field_id>.<format>")
@extended_only
@require_admin
def destroy(custom_field_id: int, format: str):
    db = get_session()
    try:
        cf = _find(db, custom_field_id)
        try:
            db.delete(cf)
            db.commit()
        except Exception as exc:
            db.rollback()
            return destroy_failed(exc)
        return head_no_content()
    finally:
        db.close()
