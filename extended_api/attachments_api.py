"""Attachment uploads.

The request body is the raw file content; metadata travels in the query
string (``filename``, ``content_type``, ``description``). Extended uploads
may carry ``attachment[author_id]`` / ``attachment[created_on]`` overrides.
"""

from __future__ import annotations

import hashlib
import re
import secrets
from typing import Any

from flask import Blueprint, request

from .api_helpers import ApiController, is_extended_api_request, iso, mark_extended_api_response, render_api
from .app_authz import current_principal, require_login
from .db import get_session
from .errors import ValidationError
from .models import Attachment
from .override_hooks import apply_pre_persist_overrides
from .overrides import ATTACHMENT_OVERRIDE_KEYS, write_override_scope

bp = Blueprint("attachments", __name__)
controller = ApiController(bp, accept_api_auth=("upload",))

_BRACKETED = re.compile(r"^(\w+)\[(\w+)\]$")


def nested_query_params(args: Any) -> dict[str, Any]:
    """``attachment[author_id]=3&notify=false`` -> {"attachment": {"author_id": "3"}, "notify": "false"}"""
    params: dict[str, Any] = {}
    for key, value in args.items():
        m = _BRACKETED.match(key)
        if m:
            params.setdefault(m.group(1), {})[m.group(2)] = value
        else:
            params[key] = value
    return params


def serialize_upload(attachment: Attachment) -> dict[str, Any]:
    return {
        "id": attachment.id,
        "token": attachment.token,
        "filename": attachment.filename,
        "filesize": attachment.filesize,
        "content_type": attachment.content_type,
        "digest": attachment.digest,
        "author_id": attachment.author_id,
        "created_on": iso(attachment.created_on),
    }


def _store_upload(content: bytes, params: dict[str, Any]):
    filename = (params.get("filename") or "").strip()
    errors = []
    if not filename:
        errors.append("Filename cannot be blank")
    if not content:
        errors.append("File cannot be empty")
    if errors:
        raise ValidationError(errors)

    digest = hashlib.sha256(content).hexdigest()
    attachment = Attachment(
        filename=filename,
        filesize=len(content),
        content_type=params.get("content_type") or request.mimetype or None,
        description=params.get("description") or None,
        digest=digest,
        token=f"{secrets.token_hex(8)}.{digest}",
        author_id=current_principal().user_id,
    )
    apply_pre_persist_overrides(attachment)
    db = get_session()
    try:
        db.add(attachment)
        db.commit()
        return render_api({"upload": serialize_upload(attachment)}, status=201)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@bp.post("/uploads.<format>")
@require_login
def upload(format: str):
    content = request.get_data(cache=False)
    params = nested_query_params(request.args)
    if not is_extended_api_request():
        return _store_upload(content, params)
    mark_extended_api_response(fallback=False)
    with write_override_scope(params, primary_key="attachment", primary_fields=ATTACHMENT_OVERRIDE_KEYS):
        return _store_upload(content, params)
