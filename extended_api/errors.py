"""Domain errors and their problem+json handlers."""
from __future__ import annotations

import traceback
import uuid
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException
from werkzeug.wrappers.response import Response

from .app_authz import AuthzError, SessionError
from .audit_events import record_audit_event
from .http_errors import forbidden, internal_server_error, problem, unauthorized, unprocessable_entity


class DomainError(Exception):
    def __init__(self, status: int, code: str, detail: str | None = None, **extra: Any):
        self.status = status
        self.code = code
        self.detail = detail or code
        self.extra = extra
        super().__init__(self.detail)


class ValidationError(DomainError):
    """Record failed validation; ``errors`` is a list of full messages."""

    def __init__(self, errors: Any, detail: str = "validation_error", **extra: Any):
        if isinstance(errors, str):
            errors = [errors]
        super().__init__(422, "validation_error", detail, **extra)
        self.errors = list(errors)


class NotFoundError(DomainError):
    def __init__(self, detail: str = "not_found", **extra: Any):
        super().__init__(404, "not_found", detail, **extra)


def _emit_problem(resp: Response) -> Response:
    payload = resp.get_json(silent=True) or {}
    record_audit_event(
        "problem_response",
        type=payload.get("type"),
        status=payload.get("status"),
        detail=payload.get("detail"),
        path=request.path,
    )
    return resp


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(SessionError)
    def _h_session(err: SessionError) -> Response:
        return _emit_problem(unauthorized(detail=str(err) or "authentication_required"))

    @app.errorhandler(AuthzError)
    def _h_authz(err: AuthzError) -> Response:
        return _emit_problem(forbidden(detail=str(err) or "forbidden"))

    @app.errorhandler(DomainError)
    def _h_domain(err: DomainError) -> Response:
        if isinstance(err, ValidationError):
            return _emit_problem(unprocessable_entity(err.errors, detail=err.detail, **err.extra))
        return _emit_problem(problem(err.status, err.detail, **err.extra))

    @app.errorhandler(HTTPException)
    def _h_http(ex: HTTPException) -> Response:
        status = ex.code or 500
        if status >= 500:
            return _emit_problem(internal_server_error())
        return _emit_problem(problem(status, ex.description or ex.name))

    @app.errorhandler(Exception)
    def _h_exception(ex: Exception) -> Response:
        incident_id = str(uuid.uuid4())
        app.logger.error("Unhandled exception incident_id=%s path=%s\n%s", incident_id, request.path, traceback.format_exc())
        record_audit_event("incident", incident_id=incident_id, path=request.path)
        return _emit_problem(internal_server_error(incident_id=incident_id))


__all__ = ["DomainError", "ValidationError", "NotFoundError", "register_error_handlers"]
