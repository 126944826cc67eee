"""Logging configuration and Prometheus metrics for the controller service."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

import structlog
from prometheus_client import REGISTRY, Counter, Gauge, Histogram


_CONFIGURED = False


def configure_logging(level: str = "INFO", *, force: bool = False) -> None:
    """Configure stdlib logging and structlog to emit JSON lines."""

    global _CONFIGURED
    if _CONFIGURED and not force:
        return
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(message)s",
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def _get_or_create_metric(metric_cls, name: str, documentation: str, labelnames: Iterable[str]):
    existing = REGISTRY._names_to_collectors.get(name)
    if existing is not None:
        return existing
    return metric_cls(name, documentation, labelnames=tuple(labelnames))


REQUEST_COUNTER = _get_or_create_metric(
    Counter,
    "clinicnav_requests_total",
    "Total HTTP requests processed by the controller service",
    ("method", "endpoint", "status"),
)
REQUEST_LATENCY = _get_or_create_metric(
    Histogram,
    "clinicnav_request_latency_seconds",
    "Latency of HTTP requests",
    ("method", "endpoint"),
)
TRIAGE_TRANSITIONS = _get_or_create_metric(
    Counter,
    "clinicnav_triage_transitions_total",
    "Triage queue transitions partitioned by operation and outcome",
    ("operation", "outcome"),
)
ACTIVE_SESSIONS = _get_or_create_metric(
    Gauge,
    "clinicnav_active_sessions",
    "View sessions currently held in memory",
    (),
)


def record_transition(operation: str, applied: bool) -> None:
    """Count a triage transition as ``applied`` or ``noop``."""

    outcome = "applied" if applied else "noop"
    TRIAGE_TRANSITIONS.labels(operation, outcome).inc()


def set_active_sessions(count: int) -> None:
    ACTIVE_SESSIONS.set(max(0, int(count)))


_SESSION_SEGMENT_RE = re.compile(r"^/api/sessions/[^/]+")
_NUMERIC_SEGMENT_RE = re.compile(r"/\d+(?=/|$)")


def normalise_path_for_metrics(path: Optional[str]) -> str:
    """Collapse session and item identifiers so label cardinality stays bounded."""

    if not path:
        return "/"
    normalised = _SESSION_SEGMENT_RE.sub("/api/sessions/{session_id}", path)
    normalised = _NUMERIC_SEGMENT_RE.sub("/{id}", normalised)
    if normalised.startswith("/api/sessions/{session_id}/navigation/sections/"):
        head, _, tail = normalised.partition("/navigation/sections/")
        suffix = tail.split("/", 1)[1] if "/" in tail else ""
        normalised = f"{head}/navigation/sections/{{section_id}}"
        if suffix:
            normalised = f"{normalised}/{suffix}"
    return normalised


__all__ = [
    "ACTIVE_SESSIONS",
    "REQUEST_COUNTER",
    "REQUEST_LATENCY",
    "TRIAGE_TRANSITIONS",
    "configure_logging",
    "normalise_path_for_metrics",
    "record_transition",
    "set_active_sessions",
]
