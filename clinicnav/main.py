"""FastAPI application exposing the navigation and triage controllers.

The service keeps one ephemeral view session per ``session_id`` and hands the
rendering layer ready-to-draw payloads: the sidebar with badges, expand flags
and the active section, plus the triage queue with its counters and the
filtered tab listing.  Transitions that reference unknown conversation ids
are no-ops and still answer ``200`` with the unchanged state.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import replace
from typing import Any, Dict, List, Literal, Optional

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field
from structlog.contextvars import bind_contextvars, unbind_contextvars

from clinicnav import navigation, triage
from clinicnav.config import AppSettings, get_settings
from clinicnav.models import NavSection, TriageItem, TriageTab
from clinicnav.navigation import NavConfig
from clinicnav.observability import (
    REQUEST_COUNTER,
    REQUEST_LATENCY,
    configure_logging,
    normalise_path_for_metrics,
)
from clinicnav.sessions import NavigationSession, SessionStore


settings = get_settings()
configure_logging(settings.log_level)
logger = structlog.get_logger(__name__)


def _load_nav_config(app_settings: AppSettings) -> NavConfig:
    """Return the configured sidebar, falling back to the built-in one."""

    path = app_settings.nav_config_file
    if path is None:
        return navigation.default_nav_config()
    try:
        return navigation.load_nav_config(path)
    except (OSError, ValueError) as exc:
        logger.error("nav_config_load_failed", path=str(path), error=str(exc))
        return navigation.default_nav_config()


STORE = SessionStore(
    max_sessions=settings.max_sessions,
    nav_config=_load_nav_config(settings),
    default_section=settings.default_section,
)

app = FastAPI(title="clinicnav", version="0.1.0")


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------


class SuccessResponse(BaseModel):
    """Standard successful response envelope."""

    success: Literal[True] = True
    data: Any | None = None


class ErrorDetail(BaseModel):
    code: int | str | None = None
    message: str
    details: Any | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    success: Literal[False] = False
    error: ErrorDetail


def _success_payload(data: Any) -> Dict[str, Any]:
    return SuccessResponse(data=data).model_dump()


def _build_error_response(payload: Any, status_code: int | None = None) -> ErrorResponse:
    """Normalise ``payload`` into the standard :class:`ErrorResponse` structure."""

    message = "An error occurred"
    details: Any | None = None
    if isinstance(payload, dict):
        message = str(payload.get("message") or payload.get("detail") or payload)
        details = payload.get("details")
    elif isinstance(payload, list):
        rendered = [str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in payload]
        if rendered:
            message = "; ".join(rendered)
        details = payload
    elif payload not in (None, ""):
        message = str(payload)
    return ErrorResponse(error=ErrorDetail(code=status_code, message=message, details=details))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert ``HTTPException`` instances into the standard error envelope."""

    error_payload = _build_error_response(exc.detail, status_code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload.model_dump(),
        headers=dict(exc.headers or {}),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    error_payload = _build_error_response(errors, status_code=422)
    return JSONResponse(status_code=422, content=error_payload.model_dump())


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def inject_trace_id(request: Request, call_next):
    """Attach or propagate a trace identifier for each request."""

    trace_id = request.headers.get("x-trace-id") or uuid.uuid4().hex
    bind_contextvars(trace_id=trace_id, path=request.url.path, method=request.method)
    request.state.trace_id = trace_id
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("request_failed")
        error_payload = _build_error_response("Internal server error", status_code=500)
        response = JSONResponse(status_code=500, content=error_payload.model_dump())
    finally:
        unbind_contextvars("trace_id", "path", "method")
    response.headers["X-Trace-Id"] = trace_id
    return response


@app.middleware("http")
async def track_http_metrics(request: Request, call_next):
    """Emit Prometheus counters and histograms for each request."""

    start = time.perf_counter()
    endpoint = normalise_path_for_metrics(request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        REQUEST_COUNTER.labels(request.method, endpoint, "500").inc()
        REQUEST_LATENCY.labels(request.method, endpoint).observe(time.perf_counter() - start)
        raise
    REQUEST_COUNTER.labels(request.method, endpoint, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, endpoint).observe(time.perf_counter() - start)
    return response


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class BadgeCountsModel(BaseModel):
    counts: Dict[str, int] = Field(default_factory=dict)


class TriageSnapshotModel(BaseModel):
    items: List[TriageItem] = Field(default_factory=list)


class FilterModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = ""


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def _section_payload(
    section: NavSection, session: NavigationSession, active_id: str
) -> Dict[str, Any]:
    return {
        "id": section.id,
        "label": section.label,
        "path": section.path,
        "badgeCount": section.badge_count,
        "badge": navigation.format_badge(section.badge_count, settings.badge_cap),
        "hasSubmenu": section.has_submenu,
        "expanded": session.expand.is_expanded(section.id),
        "active": section.id == active_id,
        "children": [
            _section_payload(child, session, active_id) for child in section.children
        ],
    }


def _navigation_payload(session: NavigationSession, path: Optional[str]) -> Dict[str, Any]:
    active_id = navigation.resolve_active_section(
        path if path is not None else "/",
        session.aliases,
        session.sections,
        default=session.default_section,
    )
    return {
        "sessionId": session.session_id,
        "path": path,
        "activeSection": active_id,
        "sections": [
            _section_payload(section, session, active_id) for section in session.sections
        ],
        "expanded": dict(session.expand.expanded),
    }


def _items_payload(items) -> List[Dict[str, Any]]:
    return [item.model_dump(mode="json", by_alias=True) for item in items]


def _triage_payload(
    session: NavigationSession,
    tab: TriageTab = TriageTab.NEW,
    text: Optional[str] = None,
    *,
    applied: Optional[bool] = None,
) -> Dict[str, Any]:
    state = session.triage
    view = triage.filter_queue(state, text)
    selected = state.selected_item()
    payload: Dict[str, Any] = {
        "sessionId": session.session_id,
        "state": state.model_dump(mode="json", by_alias=True),
        "counts": triage.queue_counts(state).model_dump(by_alias=True),
        "view": view.model_dump(mode="json", by_alias=True),
        "tab": tab.value,
        "items": _items_payload(triage.tab_items(state, tab, text)),
        "selected": selected.model_dump(mode="json", by_alias=True) if selected else None,
    }
    if applied is not None:
        payload["applied"] = applied
    return payload


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
async def health() -> Dict[str, Any]:
    return _success_payload({"status": "ok", "sessions": len(STORE)})


@app.get("/metrics", response_model=None)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/sessions/{session_id}/navigation")
async def get_navigation(session_id: str, path: Optional[str] = Query(default=None)):
    session = STORE.get_or_create(session_id)
    return _success_payload(_navigation_payload(session, path))


@app.put("/api/sessions/{session_id}/navigation/badges")
async def update_badges(
    session_id: str,
    model: BadgeCountsModel,
    path: Optional[str] = Query(default=None),
):
    def _refresh(session: NavigationSession) -> NavigationSession:
        sections = navigation.apply_badge_counts(session.sections, model.counts)
        return replace(session, sections=sections)

    session = STORE.update(session_id, _refresh)
    logger.info("nav_badges_refreshed", session_id=session_id, categories=len(model.counts))
    return _success_payload(_navigation_payload(session, path))


@app.post("/api/sessions/{session_id}/navigation/sections/{section_id}/toggle")
async def toggle_section(
    session_id: str,
    section_id: str,
    path: Optional[str] = Query(default=None),
):
    current = STORE.get_or_create(session_id)
    if navigation.find_section(current.sections, section_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown navigation section: {section_id}")

    def _toggle(session: NavigationSession) -> NavigationSession:
        expand = navigation.toggle_section_expanded(session.expand, section_id)
        return replace(session, expand=expand)

    session = STORE.update(session_id, _toggle)
    return _success_payload(_navigation_payload(session, path))


@app.put("/api/sessions/{session_id}/triage/items")
async def replace_triage_items(session_id: str, model: TriageSnapshotModel):
    session, _ = STORE.apply_triage(
        session_id,
        "repartition",
        lambda state: triage.repartition(model.items, state),
    )
    logger.info(
        "triage_repartitioned",
        session_id=session_id,
        active=len(session.triage.active_items),
        hidden=len(session.triage.hidden_items),
    )
    return _success_payload(_triage_payload(session, TriageTab.ALL))


@app.get("/api/sessions/{session_id}/triage")
async def get_triage(
    session_id: str,
    tab: TriageTab = Query(default=TriageTab.NEW),
    filter_text: Optional[str] = Query(default=None, alias="filter"),
):
    session = STORE.get_or_create(session_id)
    return _success_payload(_triage_payload(session, tab, filter_text))


@app.post("/api/sessions/{session_id}/triage/items/{item_id}/select")
async def select_item(session_id: str, item_id: int):
    session, applied = STORE.apply_triage(
        session_id, "select", lambda state: triage.select(state, item_id)
    )
    return _success_payload(_triage_payload(session, TriageTab.ALL, applied=applied))


@app.post("/api/sessions/{session_id}/triage/items/{item_id}/hide")
async def hide_item(session_id: str, item_id: int):
    session, applied = STORE.apply_triage(
        session_id, "hide", lambda state: triage.hide(state, item_id)
    )
    return _success_payload(_triage_payload(session, TriageTab.ALL, applied=applied))


@app.post("/api/sessions/{session_id}/triage/items/{item_id}/restore")
async def restore_item(session_id: str, item_id: int):
    session, applied = STORE.apply_triage(
        session_id, "restore", lambda state: triage.restore(state, item_id)
    )
    return _success_payload(_triage_payload(session, TriageTab.ALL, applied=applied))


@app.delete("/api/sessions/{session_id}/triage/selection")
async def clear_selection(session_id: str):
    session, applied = STORE.apply_triage(session_id, "clear_selection", triage.clear_selection)
    return _success_payload(_triage_payload(session, TriageTab.ALL, applied=applied))


@app.put("/api/sessions/{session_id}/triage/filter")
async def update_filter(session_id: str, model: FilterModel):
    session, applied = STORE.apply_triage(
        session_id, "set_filter", lambda state: triage.set_filter(state, model.text)
    )
    return _success_payload(_triage_payload(session, TriageTab.ALL, applied=applied))


@app.delete("/api/sessions/{session_id}")
async def drop_session(session_id: str):
    removed = STORE.drop(session_id)
    if not removed:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return _success_payload({"sessionId": session_id, "removed": True})


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":  # pragma: no cover
    run()
