"""RFC7807 problem+json responses.

Every error body carries ``type``, ``title``, ``status``, ``detail`` and the
request id. Gateway rejections are the one exception: they never reach Flask
and use the fixed body defined in ``gateway``.
"""
from __future__ import annotations

import uuid
from collections.abc import Iterable

from flask import current_app, g, has_app_context, jsonify
from werkzeug.wrappers.response import Response

PROBLEM_MIMETYPE = "application/problem+json"
DEFAULT_TYPE_BASE = "/problems/"

TITLES: dict[int, tuple[str, str]] = {
    400: ("bad_request", "Bad Request"),
    401: ("unauthorized", "Unauthorized"),
    403: ("forbidden", "Forbidden"),
    404: ("not_found", "Not Found"),
    422: ("validation_error", "Unprocessable Entity"),
    500: ("internal_error", "Internal Server Error"),
}


def problem_type(slug: str) -> str:
    base = DEFAULT_TYPE_BASE
    if has_app_context():
        base = current_app.config.get("PROBLEM_TYPE_BASE", DEFAULT_TYPE_BASE)
    return base + slug


def problem(status: int, detail: str | None = None, slug: str | None = None, **extra: object) -> Response:
    default_slug, title = TITLES.get(status, ("error", "Error"))
    slug = slug or default_slug
    payload: dict[str, object] = {
        "type": problem_type(slug),
        "title": title,
        "status": status,
        "detail": detail if detail is not None else slug,
    }
    rid = getattr(g, "request_id", None)
    if rid:
        payload["request_id"] = rid
    payload.update({k: v for k, v in extra.items() if v is not None})
    resp = jsonify(payload)
    resp.status_code = status
    resp.mimetype = PROBLEM_MIMETYPE
    return resp


def bad_request(detail: str = "bad_request", **extra: object) -> Response:
    return problem(400, detail, **extra)


def unauthorized(detail: str = "unauthorized", **extra: object) -> Response:
    return problem(401, detail, **extra)


def forbidden(detail: str = "forbidden", **extra: object) -> Response:
    return problem(403, detail, **extra)


def not_found(detail: str = "not_found", **extra: object) -> Response:
    return problem(404, detail, **extra)


def unprocessable_entity(errors: Iterable[str], detail: str = "validation_error", **extra: object) -> Response:
    return problem(422, detail, errors=list(errors), **extra)


def record_in_use(message: str) -> Response:
    """The record is still referenced; nothing was deleted."""
    return unprocessable_entity([message], detail=message, slug="record_in_use")


def destroy_failed(exc: Exception) -> Response:
    """Extended destroy actions report the failure instead of raising."""
    message = str(exc) or exc.__class__.__name__
    return unprocessable_entity([message], detail=message, slug="destroy_failed")


def internal_server_error(detail: str = "internal_error", incident_id: str | None = None, **extra: object) -> Response:
    return problem(500, detail, incident_id=incident_id or str(uuid.uuid4()), **extra)


__all__ = [
    "problem",
    "problem_type",
    "bad_request",
    "unauthorized",
    "forbidden",
    "not_found",
    "unprocessable_entity",
    "record_in_use",
    "destroy_failed",
    "internal_server_error",
]
