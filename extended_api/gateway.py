"""Extended API gateway.

WSGI application mounted under the proxy prefix (``/extended_api`` by
default). Every request is rewritten so the prefix disappears from the
routable path, re-recognized against the host application's URL map and
forwarded into the normal Flask pipeline only when

 - the route declares an explicit structured format (json/xml),
 - the endpoint belongs to a registered controller, and
 - that controller lists the action in its ``accept_api_auth`` allow-list.

Anything else receives the same fixed 404 JSON body; the reason is only
logged at DEBUG.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map

from .metrics import GATEWAY_FORWARDED, GATEWAY_REJECTED, increment

log = logging.getLogger("extended_api.gateway")

DEFAULT_PREFIX = "/extended_api"
DEFAULT_FORMATS: tuple[str, ...] = ("json", "xml")
DEFAULT_HEADER = "X-Extended-Api"

ORIGINAL_SCRIPT_NAME_KEY = "extended_api.original_script_name"
ORIGINAL_PATH_INFO_KEY = "extended_api.original_path_info"

# Per-request caches that would otherwise describe the unrewritten path
STALE_ENV_KEYS: tuple[str, ...] = (
    "werkzeug.request",
    "werkzeug.proxy_fix.orig",
    "flask._preserve_context",
)

REJECTION_BODY = json.dumps({"error": "Not a REST API endpoint"}, separators=(",", ":")).encode("utf-8")
REJECTION_CONTENT_TYPE = "application/json; charset=utf-8"

WSGIApp = Callable[[dict[str, Any], Callable[..., Any]], Iterable[bytes]]


@dataclass(frozen=True)
class RouteDecision:
    controller: str | None
    action: str | None
    format: str | None
    path: str
    method: str


class Router(Protocol):
    def recognize(self, path: str, method: str) -> RouteDecision | None: ...


class ApiAuthHandler(Protocol):
    def accepts_api_auth(self, action: str) -> bool: ...


class MapRouter:
    """Adapter exposing ``recognize`` over a werkzeug URL map.

    Blueprint endpoints (``issues.create``) split into controller and action;
    the route's ``format`` argument is reported as-is.
    """

    def __init__(self, url_map: Map, server_name: str = "localhost"):
        self.url_map = url_map
        self.server_name = server_name

    def recognize(self, path: str, method: str) -> RouteDecision | None:
        try:
            adapter = self.url_map.bind(self.server_name)
            endpoint, args = adapter.match(path, method=method)
        except HTTPException:
            return None
        except Exception:  # noqa: BLE001 - router internals never cross the gateway
            log.debug("route recognition failed path=%s method=%s", path, method, exc_info=True)
            return None
        controller, _, action = str(endpoint).rpartition(".")
        fmt = args.get("format") if isinstance(args, Mapping) else None
        return RouteDecision(
            controller=controller or None,
            action=action or None,
            format=str(fmt).lower() if fmt else None,
            path=path,
            method=method,
        )


# --- Rewriting ---
def _prefix_pattern(prefix: str) -> re.Pattern[str]:
    # Segment bounded so "/extended_api_v2" is left alone
    return re.compile(re.escape(prefix) + r"(?=/|$)")


def remove_proxy_prefix(script_name: str | None, prefix: str = DEFAULT_PREFIX) -> str:
    """Drop the first prefix occurrence wherever it sits in the script name."""
    if not script_name:
        return ""
    return _prefix_pattern(prefix).sub("", script_name, count=1)


def strip_leading_prefix(path: str | None, prefix: str = DEFAULT_PREFIX) -> str:
    if not path:
        return ""
    if path == prefix or path.startswith(prefix + "/"):
        return path[len(prefix):]
    return path


def normalize_path(path: str | None) -> str:
    return path or "/"


def build_request_path(script_name: str, path_info: str) -> str:
    return f"{script_name}{path_info}" or "/"


def build_full_path(request_path: str, query_string: str | None) -> str:
    if not query_string:
        return request_path
    return f"{request_path}?{query_string}"


def rewrite_environ(environ: Mapping[str, Any], prefix: str = DEFAULT_PREFIX) -> dict[str, Any]:
    """Return a copy of ``environ`` with the proxy prefix removed.

    The pre-rewrite SCRIPT_NAME/PATH_INFO are kept under fixed keys; when the
    environ was already rewritten those first originals win so detection
    keeps working.
    """
    env = dict(environ)

    original_script_name = env.get("SCRIPT_NAME") or ""
    original_path_info = env.get("PATH_INFO") or ""
    query_string = env.get("QUERY_STRING") or ""

    new_script_name = remove_proxy_prefix(original_script_name, prefix)
    new_path_info = normalize_path(strip_leading_prefix(original_path_info, prefix))

    request_path = build_request_path(new_script_name, new_path_info)
    full_path = build_full_path(request_path, query_string)

    env.setdefault(ORIGINAL_SCRIPT_NAME_KEY, original_script_name)
    env.setdefault(ORIGINAL_PATH_INFO_KEY, original_path_info)

    env["SCRIPT_NAME"] = new_script_name
    env["PATH_INFO"] = new_path_info
    env["RAW_PATH_INFO"] = new_path_info
    env["REQUEST_PATH"] = request_path
    env["REQUEST_URI"] = full_path
    env["RAW_URI"] = full_path

    for key in STALE_ENV_KEYS:
        env.pop(key, None)
    return env


def is_extended_api_environ(environ: Mapping[str, Any], prefix: str = DEFAULT_PREFIX) -> bool:
    """True when the stashed pre-rewrite path carried the proxy prefix.

    Looks only at the original metadata; the live PATH_INFO never contains
    the prefix after rewriting.
    """
    original_path = environ.get(ORIGINAL_PATH_INFO_KEY)
    original_script_name = environ.get(ORIGINAL_SCRIPT_NAME_KEY)
    if original_path is None and original_script_name is None:
        return False
    if prefix in str(original_path or ""):
        return True
    combined = str(original_script_name or "") + str(original_path or "")
    return prefix in combined


# --- Gateway ---
class ExtendedApiGateway:
    def __init__(
        self,
        app: WSGIApp,
        router: Router,
        handlers: Mapping[str, ApiAuthHandler],
        prefix: str = DEFAULT_PREFIX,
        formats: Iterable[str] = DEFAULT_FORMATS,
        header: str = DEFAULT_HEADER,
    ):
        self.app = app
        self.router = router
        self.handlers = handlers
        self.prefix = prefix
        self.formats = frozenset(f.lower() for f in formats)
        self.header = header

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        env = rewrite_environ(environ, self.prefix)
        decision = self.resolve(env)
        if decision is None or not self.authorize(decision):
            increment(GATEWAY_REJECTED)
            return self.not_found_response(start_response)
        increment(GATEWAY_FORWARDED, {"controller": str(decision.controller), "action": str(decision.action)})
        return self.app(env, self._with_mode_header(start_response))

    def resolve(self, environ: Mapping[str, Any]) -> RouteDecision | None:
        path = environ.get("PATH_INFO") or "/"
        method = str(environ.get("REQUEST_METHOD") or "GET").upper()
        try:
            decision = self.router.recognize(path, method)
        except Exception:  # noqa: BLE001
            log.debug("router raised for %s %s", method, path, exc_info=True)
            return None
        if decision is None:
            log.debug("rejected %s %s: unrecognized", method, path)
        return decision

    def authorize(self, decision: RouteDecision) -> bool:
        if decision.format not in self.formats:
            log.debug("rejected %s: format %r not allowed", decision.path, decision.format)
            return False
        if not decision.controller or not decision.action:
            log.debug("rejected %s: no controller/action", decision.path)
            return False
        handler = self.handlers.get(decision.controller)
        if handler is None:
            log.debug("rejected %s: unknown controller %s", decision.path, decision.controller)
            return False
        try:
            accepted = bool(handler.accepts_api_auth(decision.action))
        except Exception:  # noqa: BLE001
            log.debug("accepts_api_auth raised for %s", decision.controller, exc_info=True)
            return False
        if not accepted:
            log.debug("rejected %s: %s#%s not api-auth", decision.path, decision.controller, decision.action)
        return accepted

    def _with_mode_header(self, start_response: Callable[..., Any]) -> Callable[..., Any]:
        header = self.header

        def _start(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            if not any(name.lower() == header.lower() for name, _ in headers):
                headers = list(headers) + [(header, "native")]
            return start_response(status, headers, exc_info)

        return _start

    @staticmethod
    def not_found_response(start_response: Callable[..., Any]) -> list[bytes]:
        start_response(
            "404 Not Found",
            [
                ("Content-Type", REJECTION_CONTENT_TYPE),
                ("Content-Length", str(len(REJECTION_BODY))),
            ],
        )
        return [REJECTION_BODY]


__all__ = [
    "RouteDecision",
    "MapRouter",
    "ExtendedApiGateway",
    "rewrite_environ",
    "remove_proxy_prefix",
    "strip_leading_prefix",
    "is_extended_api_environ",
    "ORIGINAL_SCRIPT_NAME_KEY",
    "ORIGINAL_PATH_INFO_KEY",
    "REJECTION_BODY",
    "REJECTION_CONTENT_TYPE",
]
