"""Shared plumbing for the REST resource blueprints.

Each blueprint is wrapped in an ``ApiController`` that declares which of its
actions accept API authentication; the gateway consults that allow-list and
never maintains one itself.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable, Mapping
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request

from .errors import NotFoundError
from .gateway import DEFAULT_FORMATS, DEFAULT_PREFIX, is_extended_api_environ

P = ParamSpec("P")
R = TypeVar("R")

CONTROLLERS_EXTENSION = "extended_api.controllers"


class ApiController:
    def __init__(self, blueprint: Blueprint, accept_api_auth: Iterable[str] = ()):
        self.blueprint = blueprint
        self.accept_api_auth_actions: frozenset[str] = frozenset(accept_api_auth)

    @property
    def name(self) -> str:
        return self.blueprint.name

    def accept_api_auth(self, *actions: str) -> None:
        self.accept_api_auth_actions = self.accept_api_auth_actions | frozenset(actions)

    def accepts_api_auth(self, action: str) -> bool:
        return action in self.accept_api_auth_actions


def register_controller(app: Flask, controller: ApiController) -> None:
    app.register_blueprint(controller.blueprint)
    app.extensions.setdefault(CONTROLLERS_EXTENSION, {})[controller.name] = controller


def controller_registry(app: Flask) -> dict[str, ApiController]:
    return app.extensions.setdefault(CONTROLLERS_EXTENSION, {})


# --- Request inspection ---
def api_format(default: str | None = None) -> str | None:
    fmt = (request.view_args or {}).get("format")
    return str(fmt).lower() if fmt else default


def api_request() -> bool:
    formats = current_app.config.get("EXTENDED_API_FORMATS", DEFAULT_FORMATS)
    return api_format() in formats


def is_extended_api_request() -> bool:
    """Did the executing request arrive through the extended gateway?"""
    if not api_request():
        return False
    prefix = current_app.config.get("EXTENDED_API_PREFIX", DEFAULT_PREFIX)
    return is_extended_api_environ(request.environ, prefix)


XML_MIMETYPES = frozenset({"application/xml", "text/xml"})


def _xml_params(node: ET.Element) -> Any:
    if node.get("nil") == "true":
        return None
    if node.get("type") == "array":
        return [_xml_params(child) for child in node]
    if len(node):
        return {child.tag: _xml_params(child) for child in node}
    return (node.text or "").strip()


def parse_xml_params(body: bytes) -> dict[str, Any]:
    """Read an XML request body into the nested shape ``render_xml`` emits.

    The root tag becomes the single top-level key; unparseable bodies yield {}.
    """
    if not body or not body.strip():
        return {}
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return {}
    return {root.tag: _xml_params(root)}


def request_params() -> dict[str, Any]:
    if request.mimetype in XML_MIMETYPES or (api_format() == "xml" and not request.is_json):
        return parse_xml_params(request.get_data(cache=True))
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return {}


def mark_extended_api_response(fallback: bool = False) -> None:
    g.extended_api_mode = "native" if fallback else "extended"


def extended_only(fn: Callable[P, R]) -> Callable[P, R]:
    """Actions that only exist on the extended surface; native callers get 404."""

    @wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        if not is_extended_api_request():
            raise NotFoundError("not_found")
        mark_extended_api_response(fallback=False)
        return fn(*args, **kwargs)

    return wrapper


# --- Rendering ---
def _xml_value(parent: ET.Element, key: str, value: Any) -> None:
    node = ET.SubElement(parent, key)
    if isinstance(value, Mapping):
        for k, v in value.items():
            _xml_value(node, str(k), v)
    elif isinstance(value, (list, tuple)):
        node.set("type", "array")
        child_tag = key[:-1] if key.endswith("s") else "item"
        for item in value:
            _xml_value(node, child_tag, item)
    elif value is None:
        pass
    elif isinstance(value, bool):
        node.text = "true" if value else "false"
    else:
        node.text = str(value)


def render_xml(payload: Mapping[str, Any]) -> bytes:
    if len(payload) == 1:
        (root_key, root_value), = payload.items()
    else:
        root_key, root_value = "response", payload
    holder = ET.Element("holder")
    _xml_value(holder, str(root_key), root_value)
    return b'<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(holder[0], encoding="utf-8")


def render_api(payload: Mapping[str, Any], status: int = 200, location: str | None = None) -> Response:
    if api_format() == "xml":
        resp = Response(render_xml(payload), status=status, mimetype="application/xml")
    else:
        resp = jsonify(payload)
        resp.status_code = status
    if location:
        resp.headers["Location"] = location
    return resp


def head_no_content() -> Response:
    return Response(status=204)


def iso(value: Any) -> str | None:
    if value is None:
        return None
    return value.isoformat() + "Z" if getattr(value, "tzinfo", None) is None else value.isoformat()


__all__ = [
    "ApiController",
    "register_controller",
    "controller_registry",
    "api_format",
    "api_request",
    "is_extended_api_request",
    "request_params",
    "parse_xml_params",
    "mark_extended_api_response",
    "extended_only",
    "render_api",
    "render_xml",
    "head_no_content",
    "iso",
]
