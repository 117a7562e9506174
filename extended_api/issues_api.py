"""Issues API.

Native create/update behave like any tracker API. Through the extended
gateway an administrator may additionally carry ``author_id`` and the
``*_on`` timestamps of the issue (and of the journal written by an update),
and silence notifications with ``notify: false``.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, request, url_for
from sqlalchemy import func, select

from . import notifications
from .api_helpers import (
    ApiController,
    api_format,
    head_no_content,
    is_extended_api_request,
    iso,
    mark_extended_api_response,
    render_api,
    request_params,
)
from .app_authz import current_principal, require_login
from .db import get_session
from .errors import NotFoundError, ValidationError
from .http_errors import destroy_failed
from .models import Enumeration, Issue, IssueStatus, Journal, Tracker, User, utcnow
from .override_hooks import apply_pre_persist_overrides
from .overrides import ISSUE_OVERRIDE_KEYS, JOURNAL_OVERRIDE_KEYS, write_override_scope

bp = Blueprint("issues", __name__)
controller = ApiController(bp, accept_api_auth=("index", "show", "create", "update", "destroy"))

ASSIGNABLE_FIELDS = ("subject", "description", "tracker_id", "status_id", "priority_id", "project_id")
_ID_FIELDS = {"tracker_id", "status_id", "priority_id", "project_id"}


def _named(obj: Any) -> dict[str, Any] | None:
    if obj is None:
        return None
    return {"id": obj.id, "name": obj.name}


def serialize_journal(db, journal: Journal) -> dict[str, Any]:
    return {
        "id": journal.id,
        "issue_id": journal.journalized_id,
        "user": _named(db.get(User, journal.user_id)) if journal.user_id else None,
        "updated_by": _named(db.get(User, journal.updated_by_id)) if journal.updated_by_id else None,
        "notes": journal.notes or "",
        "created_on": iso(journal.created_on),
        "updated_on": iso(journal.updated_on),
        "details": list(journal.details or []),
    }


def serialize_issue(db, issue: Issue, include_journals: bool = False) -> dict[str, Any]:
    status = db.get(IssueStatus, issue.status_id)
    data: dict[str, Any] = {
        "id": issue.id,
        "project_id": issue.project_id,
        "tracker": _named(db.get(Tracker, issue.tracker_id)),
        "status": {"id": status.id, "name": status.name, "is_closed": status.is_closed} if status else None,
        "priority": _named(db.get(Enumeration, issue.priority_id)) if issue.priority_id else None,
        "author": _named(db.get(User, issue.author_id)) if issue.author_id else None,
        "subject": issue.subject,
        "description": issue.description,
        "created_on": iso(issue.created_on),
        "updated_on": iso(issue.updated_on),
        "closed_on": iso(issue.closed_on),
    }
    if include_journals:
        data["journals"] = [serialize_journal(db, j) for j in issue.journals]
    return data


def _issue_attributes(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    attrs: dict[str, Any] = {}
    for field in ASSIGNABLE_FIELDS:
        if field not in raw:
            continue
        value = raw[field]
        if field in _ID_FIELDS and value not in (None, ""):
            try:
                value = int(value)
            except (TypeError, ValueError):
                value = -1  # reported by validation
        attrs[field] = value
    return attrs


def _default_status_id(db, tracker_id: int | None) -> int | None:
    tracker = db.get(Tracker, tracker_id) if tracker_id else None
    if tracker is not None and tracker.default_status_id:
        return tracker.default_status_id
    return db.execute(select(IssueStatus.id).order_by(IssueStatus.position, IssueStatus.id).limit(1)).scalar()


def _assign(db, issue: Issue, attrs: dict[str, Any]) -> list[dict[str, Any]]:
    """Assign attributes, returning journal details for changed ones."""
    details = []
    for field, value in attrs.items():
        old = getattr(issue, field)
        if old != value:
            details.append({"property": "attr", "name": field, "old_value": old, "new_value": value})
        setattr(issue, field, value)
    status = db.get(IssueStatus, issue.status_id) if issue.status_id else None
    if status is not None and status.is_closed:
        if any(d["name"] == "status_id" for d in details) or issue.closed_on is None:
            issue.closed_on = utcnow()
    apply_pre_persist_overrides(issue)
    return details


def _validate(db, issue: Issue) -> None:
    errors = []
    if not (issue.subject or "").strip():
        errors.append("Subject cannot be blank")
    if issue.tracker_id is None or db.get(Tracker, issue.tracker_id) is None:
        errors.append("Tracker is invalid")
    if issue.status_id is None or db.get(IssueStatus, issue.status_id) is None:
        errors.append("Status is invalid")
    if issue.priority_id is not None:
        priority = db.get(Enumeration, issue.priority_id)
        if priority is None or priority.type != "IssuePriority":
            errors.append("Priority is invalid")
    if errors:
        raise ValidationError(errors)


def init_journal(issue: Issue, user_id: int | None, notes: str | None) -> Journal:
    journal = Journal(user_id=user_id, notes=notes or None, details=[])
    issue.journals.append(journal)
    apply_pre_persist_overrides(journal)
    issue.current_journal = journal
    return journal


@bp.get("/issues.<format>")
def index(format: str):
    db = get_session()
    try:
        offset = max(int(request.args.get("offset", 0) or 0), 0)
        limit = min(max(int(request.args.get("limit", 25) or 25), 1), 100)
    except ValueError:
        raise ValidationError("offset and limit must be integers") from None
    try:
        total = db.execute(select(func.count(Issue.id))).scalar() or 0
        issues = db.execute(select(Issue).order_by(Issue.id.desc()).offset(offset).limit(limit)).scalars().all()
        return render_api(
            {
                "issues": [serialize_issue(db, i) for i in issues],
                "total_count": total,
                "offset": offset,
                "limit": limit,
            }
        )
    finally:
        db.close()


@bp.get("/issues/<int:issue_id>.<format>")
def show(issue_id: int, format: str):
    db = get_session()
    try:
        issue = db.get(Issue, issue_id)
        if issue is None:
            raise NotFoundError("issue not found")
        include = {s.strip() for s in (request.args.get("include") or "").split(",")}
        return render_api({"issue": serialize_issue(db, issue, include_journals="journals" in include)})
    finally:
        db.close()


def _create_issue(params: dict[str, Any]):
    db = get_session()
    try:
        attrs = _issue_attributes(params.get("issue"))
        issue = Issue(author_id=current_principal().user_id)
        if attrs.get("tracker_id") is None:
            attrs["tracker_id"] = db.execute(select(Tracker.id).order_by(Tracker.position, Tracker.id).limit(1)).scalar()
        if attrs.get("status_id") is None:
            attrs["status_id"] = _default_status_id(db, attrs.get("tracker_id"))
        _assign(db, issue, attrs)
        _validate(db, issue)
        db.add(issue)
        db.commit()
        notifications.issue_added(issue)
        return render_api(
            {"issue": serialize_issue(db, issue)},
            status=201,
            location=url_for("issues.show", issue_id=issue.id, format=api_format("json")),
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _latest_journal(db, issue: Issue) -> Journal | None:
    return db.execute(
        select(Journal).where(Journal.journalized_id == issue.id).order_by(Journal.id.desc()).limit(1)
    ).scalar()


def _update_issue(issue_id: int, params: dict[str, Any]):
    db = get_session()
    try:
        issue = db.get(Issue, issue_id)
        if issue is None:
            raise NotFoundError("issue not found")
        raw = params.get("issue") if isinstance(params.get("issue"), dict) else {}
        journal = init_journal(issue, current_principal().user_id, raw.get("notes"))
        journal.details = _assign(db, issue, _issue_attributes(raw))
        _validate(db, issue)
        if not journal.notes and not journal.details:
            issue.journals.remove(journal)
            journal = None
        db.commit()
        if journal is not None:
            notifications.issue_edited(journal)
        if is_extended_api_request():
            shown = journal or _latest_journal(db, issue)
            if shown is not None:
                return render_api({"journal": serialize_journal(db, shown)})
        return head_no_content()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _override_scope(params: dict[str, Any]):
    return write_override_scope(
        params,
        primary_key="issue",
        primary_fields=ISSUE_OVERRIDE_KEYS,
        secondary_key="journal",
        secondary_fields=JOURNAL_OVERRIDE_KEYS,
    )


@bp.post("/issues.<format>")
@require_login
def create(format: str):
    params = request_params()
    if not is_extended_api_request():
        return _create_issue(params)
    mark_extended_api_response(fallback=False)
    with _override_scope(params):
        return _create_issue(params)


@bp.route("/issues/<int:issue_id>.<format>", methods=["PUT", "PATCH"])
@require_login
def update(issue_id: int, format: str):
    params = request_params()
    if not is_extended_api_request():
        return _update_issue(issue_id, params)
    mark_extended_api_response(fallback=False)
    with _override_scope(params):
        return _update_issue(issue_id, params)


@bp.delete("/issues/<int:issue_id>.<format>")
@require_login
def destroy(issue_id: int, format: str):
    db = get_session()
    try:
        issue = db.get(Issue, issue_id)
        if issue is None:
            raise NotFoundError("issue not found")
        extended = is_extended_api_request()
        if extended:
            mark_extended_api_response(fallback=False)
        try:
            db.delete(issue)
            db.commit()
        except Exception as exc:
            db.rollback()
            if not extended:
                raise
            return destroy_failed(exc)
        return head_no_content()
    finally:
        db.close()
