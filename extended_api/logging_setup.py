"""Logging for the extended API.

``request_logger`` is the per-request access log (one structured dict per
response). ``SupportLogHandler`` keeps WARN+ records in a ring buffer tagged
with the request id and whether the call came through the extended gateway,
so a failing import can be traced without external log aggregation.
"""

from __future__ import annotations

import collections
import logging
import time

from flask import g, has_request_context, request

LOG_BUFFER: collections.deque[dict] = collections.deque(maxlen=500)


class SupportLogHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        entry = {
            "ts": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "msg": self.format(record),
            "request_id": "-",
            "path": "-",
            "extended_api": None,
        }
        if has_request_context():
            entry["request_id"] = getattr(g, "request_id", "-")
            entry["path"] = request.path
            entry["extended_api"] = getattr(g, "extended_api_mode", None)
        LOG_BUFFER.append(entry)


def install_support_log_handler(level: int = logging.WARNING) -> SupportLogHandler:
    root = logging.getLogger()
    for existing in root.handlers:
        if isinstance(existing, SupportLogHandler):
            return existing
    handler = SupportLogHandler(level=level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    return handler


def recent_log_entries(request_id: str | None = None, limit: int = 50) -> list[dict]:
    entries = [e for e in LOG_BUFFER if request_id is None or e["request_id"] == request_id]
    return entries[-limit:]


def request_logger(name: str = "extended_api") -> logging.Logger:
    log = logging.getLogger(name)
    if not log.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter("%(message)s"))
        log.addHandler(stream)
    log.setLevel(logging.INFO)
    return log


__all__ = ["LOG_BUFFER", "SupportLogHandler", "install_support_log_handler", "recent_log_entries", "request_logger"]
