"""Issue statuses, trackers and roles.

Index is part of the native API. Show/create/update/destroy only exist on the
extended surface and require an administrator.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from flask import Blueprint, url_for
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .api_helpers import ApiController, api_format, extended_only, head_no_content, render_api, request_params
from .app_authz import require_admin
from .db import get_session
from .errors import NotFoundError, ValidationError
from .http_errors import destroy_failed, record_in_use
from .models import Issue, IssueStatus, Role, Tracker

CRUD_ACTIONS = ("index", "show", "create", "update", "destroy")


@dataclass(frozen=True)
class CatalogResource:
    name: str  # blueprint / url segment, e.g. "trackers"
    key: str  # payload key, e.g. "tracker"
    model: type
    fields: tuple[str, ...]
    serialize: Callable[[Any], dict[str, Any]]
    in_use: Callable[[Session, Any], str | None] = lambda db, obj: None


def _status_dict(s: IssueStatus) -> dict[str, Any]:
    return {
        "id": s.id,
        "name": s.name,
        "description": s.description,
        "is_closed": s.is_closed,
        "position": s.position,
        "default_done_ratio": s.default_done_ratio,
    }


def _tracker_dict(t: Tracker) -> dict[str, Any]:
    return {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "default_status_id": t.default_status_id,
        "is_in_roadmap": t.is_in_roadmap,
        "position": t.position,
    }


def _role_dict(r: Role) -> dict[str, Any]:
    return {
        "id": r.id,
        "name": r.name,
        "position": r.position,
        "assignable": r.assignable,
        "issues_visibility": r.issues_visibility,
        "permissions": list(r.permissions or []),
    }


def _issues_using(column) -> Callable[[Session, Any], str | None]:
    def check(db: Session, obj: Any) -> str | None:
        count = db.execute(select(func.count(Issue.id)).where(column == obj.id)).scalar() or 0
        if count:
            return f"Unable to delete {obj.name}: used by {count} issue(s)"
        return None

    return check


def _coerce(field: str, value: Any) -> Any:
    if field in ("is_closed", "is_in_roadmap", "assignable"):
        return value is True or str(value).strip().lower() in ("true", "1")
    if field in ("position", "default_done_ratio", "default_status_id") and value not in (None, ""):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field.replace('_', ' ').capitalize()} is not a number") from None
    if field == "permissions":
        return [str(p) for p in value] if isinstance(value, list) else []
    return value


def make_catalog(resource: CatalogResource) -> ApiController:
    bp = Blueprint(resource.name, __name__)
    model = resource.model

    def _find(db: Session, obj_id: int) -> Any:
        obj = db.get(model, obj_id)
        if obj is None:
            raise NotFoundError(f"{resource.key} not found")
        return obj

    def _assign(db: Session, obj: Any) -> None:
        raw = request_params().get(resource.key)
        if not isinstance(raw, dict):
            raw = {}
        for field in resource.fields:
            if field in raw:
                setattr(obj, field, _coerce(field, raw[field]))
        errors = []
        name = (obj.name or "").strip() if isinstance(obj.name, str) else ""
        if not name:
            errors.append("Name cannot be blank")
        else:
            clash = db.execute(select(model.id).where(model.name == name, model.id != obj.id)).first()
            if clash:
                errors.append("Name has already been taken")
        if errors:
            raise ValidationError(errors)

    @bp.get(f"/{resource.name}.<format>")
    def index(format: str):
        db = get_session()
        try:
            rows = db.execute(select(model).order_by(model.position, model.id)).scalars().all()
            return render_api({resource.name: [resource.serialize(r) for r in rows]})
        finally:
            db.close()

    @bp.get(f"/{resource.name}/<int:obj_id>.<format>")
    @extended_only
    def show(obj_id: int, format: str):
        db = get_session()
        try:
            return render_api({resource.key: resource.serialize(_find(db, obj_id))})
        finally:
            db.close()

    @bp.post(f"/{resource.name}.<format>")
    @extended_only
    @require_admin
    def create(format: str):
        db = get_session()
        try:
            obj = model()
            _assign(db, obj)
            db.add(obj)
            db.commit()
            return render_api(
                {resource.key: resource.serialize(obj)},
                status=201,
                location=url_for(f"{resource.name}.index", format=api_format("json")),
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @bp.route(f"/{resource.name}/<int:obj_id>.<format>", methods=["PUT", "PATCH"])
    @extended_only
    @require_admin
    def update(obj_id: int, format: str):
        db = get_session()
        try:
            obj = _find(db, obj_id)
            _assign(db, obj)
            db.commit()
            return render_api({resource.key: resource.serialize(obj)})
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @bp.delete(f"/{resource.name}/<int:obj_id>.<format>")
    @extended_only
    @require_admin
    def destroy(obj_id: int, format: str):
        db = get_session()
        try:
            obj = _find(db, obj_id)
            message = resource.in_use(db, obj)
            if message:
                return record_in_use(message)
            try:
                db.delete(obj)
                db.commit()
            except Exception as exc:
                db.rollback()
                return destroy_failed(exc)
            return head_no_content()
        finally:
            db.close()

    return ApiController(bp, accept_api_auth=CRUD_ACTIONS)


issue_statuses_controller = make_catalog(
    CatalogResource(
        name="issue_statuses",
        key="issue_status",
        model=IssueStatus,
        fields=("name", "description", "is_closed", "position", "default_done_ratio"),
        serialize=_status_dict,
        in_use=_issues_using(Issue.status_id),
    )
)

trackers_controller = make_catalog(
    CatalogResource(
        name="trackers",
        key="tracker",
        model=Tracker,
        fields=("name", "description", "default_status_id", "is_in_roadmap", "position"),
        serialize=_tracker_dict,
        in_use=_issues_using(Issue.tracker_id),
    )
)

roles_controller = make_catalog(
    CatalogResource(
        name="roles",
        key="role",
        model=Role,
        fields=("name", "position", "assignable", "issues_visibility", "permissions"),
        serialize=_role_dict,
    )
)

__all__ = ["CatalogResource", "make_catalog", "issue_statuses_controller", "trackers_controller", "roles_controller"]
