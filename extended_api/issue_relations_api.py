"""Issue relations API (create/destroy)."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, url_for
from sqlalchemy import select

from . import notifications
from .api_helpers import (
    ApiController,
    api_format,
    head_no_content,
    is_extended_api_request,
    mark_extended_api_response,
    render_api,
    request_params,
)
from .app_authz import require_login
from .db import get_session
from .errors import NotFoundError, ValidationError
from .http_errors import destroy_failed
from .models import Issue, IssueRelation
from .overrides import notification_scope

bp = Blueprint("issue_relations", __name__)
controller = ApiController(bp, accept_api_auth=("create", "destroy"))

RELATION_TYPES = (
    "relates",
    "duplicates",
    "duplicated",
    "blocks",
    "blocked",
    "precedes",
    "follows",
    "copied_to",
    "copied_from",
)


def serialize_relation(relation: IssueRelation) -> dict[str, Any]:
    return {
        "id": relation.id,
        "issue_id": relation.issue_from_id,
        "issue_to_id": relation.issue_to_id,
        "relation_type": relation.relation_type,
        "delay": relation.delay,
    }


def _create_relation(issue_id: int, params: dict[str, Any]):
    db = get_session()
    try:
        issue = db.get(Issue, issue_id)
        if issue is None:
            raise NotFoundError("issue not found")
        raw = params.get("relation") if isinstance(params.get("relation"), dict) else {}
        errors = []
        try:
            to_id = int(raw.get("issue_to_id"))
        except (TypeError, ValueError):
            to_id = None
        if to_id is None or db.get(Issue, to_id) is None:
            errors.append("Related issue cannot be blank")
        elif to_id == issue.id:
            errors.append("Related issue is invalid")
        relation_type = raw.get("relation_type") or "relates"
        if relation_type not in RELATION_TYPES:
            errors.append("Relation type is not included in the list")
        delay = raw.get("delay")
        if delay not in (None, ""):
            try:
                delay = int(delay)
            except (TypeError, ValueError):
                errors.append("Delay is not a number")
        else:
            delay = None
        if not errors:
            dup = db.execute(
                select(IssueRelation.id).where(
                    IssueRelation.issue_from_id == issue.id, IssueRelation.issue_to_id == to_id
                )
            ).first()
            if dup:
                errors.append("Related issue has already been taken")
        if errors:
            raise ValidationError(errors)
        relation = IssueRelation(issue_from_id=issue.id, issue_to_id=to_id, relation_type=relation_type, delay=delay)
        db.add(relation)
        db.commit()
        notifications.relation_changed(relation, "added")
        return render_api(
            {"relation": serialize_relation(relation)},
            status=201,
            location=url_for("issue_relations.destroy", relation_id=relation.id, format=api_format("json")),
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _destroy_relation(relation_id: int, extended: bool):
    db = get_session()
    try:
        relation = db.get(IssueRelation, relation_id)
        if relation is None:
            raise NotFoundError("relation not found")
        try:
            db.delete(relation)
            db.commit()
        except Exception as exc:
            db.rollback()
            if not extended:
                raise
            return destroy_failed(exc)
        notifications.relation_changed(relation, "removed")
        return head_no_content()
    finally:
        db.close()


@bp.post("/issues/<int:issue_id>/relations.<format>")
@require_login
def create(issue_id: int, format: str):
    params = request_params()
    if not is_extended_api_request():
        return _create_relation(issue_id, params)
    mark_extended_api_response(fallback=False)
    with notification_scope(params):
        return _create_relation(issue_id, params)


@bp.delete("/relations/<int:relation_id>.<format>")
@require_login
def destroy(relation_id: int, format: str):
    if not is_extended_api_request():
        return _destroy_relation(relation_id, extended=False)
    mark_extended_api_response(fallback=False)
    with notification_scope(request_params()):
        return _destroy_relation(relation_id, extended=True)
