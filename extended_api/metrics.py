"""Pluggable counters.

Backends: ``noop`` (default), ``log`` (one INFO line per increment on the
``metrics`` logger) and ``memory`` (kept in-process, handy in tests and for
the support console).
"""
from __future__ import annotations

import collections
import logging
from collections.abc import Mapping
from typing import Protocol

GATEWAY_FORWARDED = "extended_api.gateway.forwarded"
GATEWAY_REJECTED = "extended_api.gateway.rejected"
OVERRIDES_FORCED = "extended_api.overrides.forced"

logger = logging.getLogger("metrics")


class Metrics(Protocol):
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None: ...  # pragma: no cover - interface only


class _NoopMetrics:
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:  # pragma: no cover - noop
        return


class LoggingMetrics:
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:
        ordered = dict(sorted((tags or {}).items()))
        logger.info("metric name=%s tags=%s", name, ordered)


class MemoryMetrics:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, str]]] = []
        self.counts: collections.Counter[str] = collections.Counter()

    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:
        self.events.append((name, dict(tags or {})))
        self.counts[name] += 1


BACKENDS = {"noop": _NoopMetrics, "log": LoggingMetrics, "memory": MemoryMetrics}

_metrics: Metrics = _NoopMetrics()


def set_metrics(m: Metrics) -> None:
    global _metrics
    _metrics = m


def reset_metrics() -> None:
    set_metrics(_NoopMetrics())


def configure_metrics(backend: str | None) -> Metrics:
    factory = BACKENDS.get((backend or "noop").strip().lower())
    if factory is None:
        logger.warning("unknown metrics backend %r; using noop", backend)
        factory = _NoopMetrics
    m = factory()
    set_metrics(m)
    return m


def increment(name: str, tags: Mapping[str, str] | None = None) -> None:
    _metrics.increment(name, tags)


__all__ = [
    "GATEWAY_FORWARDED",
    "GATEWAY_REJECTED",
    "OVERRIDES_FORCED",
    "Metrics",
    "LoggingMetrics",
    "MemoryMetrics",
    "set_metrics",
    "reset_metrics",
    "configure_metrics",
    "increment",
]
