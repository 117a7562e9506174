"""Flask application factory.

Provides:
 - App factory with configuration override
 - DB engine initialization
 - Resource controllers (issues, relations, uploads, custom fields,
   enumerations, statuses, trackers, roles)
 - RFC7807 problem+json error handling
 - The extended API gateway mounted under EXTENDED_API_PREFIX
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.middleware.dispatcher import DispatcherMiddleware
from werkzeug.wrappers.response import Response

from . import (
    attachments_api,
    catalog_api,
    custom_fields_api,
    enumerations_api,
    issue_relations_api,
    issues_api,
)
from .api_helpers import controller_registry, register_controller
from .app_authz import current_principal, load_principal
from .config import Config
from .db import create_all, init_engine, remove_session
from .errors import register_error_handlers
from .gateway import ExtendedApiGateway, MapRouter
from .logging_setup import install_support_log_handler, request_logger
from .metrics import configure_metrics
from .override_hooks import register_override_hooks

CONTROLLERS = (
    issues_api.controller,
    issue_relations_api.controller,
    attachments_api.controller,
    custom_fields_api.controller,
    enumerations_api.controller,
    catalog_api.issue_statuses_controller,
    catalog_api.trackers_controller,
    catalog_api.roles_controller,
)


def create_app(config_override: dict[str, Any] | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__, static_folder=None)
    log = request_logger()

    # --- Configuration ---
    cfg = Config.from_env()
    if config_override:
        known = {k: v for k, v in config_override.items() if hasattr(cfg, k)}
        if known:
            cfg.override(known)
    app.config.update(cfg.to_flask_dict())
    if config_override:
        for k, v in config_override.items():  # also allow direct Flask config keys
            if k.isupper():
                app.config[k] = v

    # --- DB setup ---
    init_engine(cfg.database_url, force=bool(config_override))
    if app.config.get("DEV_CREATE_ALL"):
        create_all()

    # --- Metrics backend wiring ---
    backend = app.config.get("METRICS_BACKEND") or "noop"
    if backend != "noop":
        configure_metrics(backend)
        app.logger.info("Metrics backend initialized: %s", backend)

    register_error_handlers(app)
    register_override_hooks()
    for controller in CONTROLLERS:
        register_controller(app, controller)

    @app.before_request
    def _before_req() -> None:
        g._t0 = time.perf_counter()
        g.request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        load_principal()

    @app.after_request
    def _after_req(resp: Response) -> Response:
        dur_ms = int((time.perf_counter() - getattr(g, "_t0", time.perf_counter())) * 1000)
        rid = getattr(g, "request_id", None) or str(uuid.uuid4())
        resp.headers["X-Request-Id"] = rid
        resp.headers["X-Request-Duration-ms"] = str(dur_ms)
        mode = getattr(g, "extended_api_mode", None)
        header = app.config["EXTENDED_API_HEADER"]
        if mode and header not in resp.headers:
            resp.headers[header] = mode
        log.info(
            {
                "request_id": rid,
                "user_id": current_principal().user_id,
                "method": request.method,
                "path": request.path,
                "status": resp.status_code,
                "duration_ms": dur_ms,
                "extended_api": mode,
            }
        )
        return resp

    @app.teardown_appcontext
    def _remove_session(exc: BaseException | None) -> None:
        remove_session()

    install_support_log_handler()

    # --- Extended API gateway ---
    gateway = ExtendedApiGateway(
        app.wsgi_app,
        MapRouter(app.url_map),
        controller_registry(app),
        prefix=app.config["EXTENDED_API_PREFIX"],
        formats=app.config["EXTENDED_API_FORMATS"],
        header=app.config["EXTENDED_API_HEADER"],
    )
    app.wsgi_app = DispatcherMiddleware(app.wsgi_app, {app.config["EXTENDED_API_PREFIX"]: gateway})  # type: ignore[method-assign]
    app.extensions["extended_api.gateway"] = gateway
    logging.getLogger("extended_api.gateway").debug("gateway mounted at %s", app.config["EXTENDED_API_PREFIX"])
    return app


__all__ = ["create_app", "CONTROLLERS"]
