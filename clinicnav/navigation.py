"""Navigation tree helpers: badge refresh, active-section resolution and
sidebar expand/collapse state.

The sidebar is a static tree of :class:`~clinicnav.models.NavSection`
objects built once from configuration.  Only badge counts change at runtime
(on every notification-count refresh) and they are applied by rebuilding the
tree, never in place.  Route resolution maps the browser path to a top-level
section id through an alias table first, then by matching section paths, and
falls back to ``home``.  None of the runtime helpers raise: unknown ids and
odd paths degrade to "collapsed" and the default section.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from clinicnav.models import ExpandState, InvariantViolation, NavSection


logger = structlog.get_logger(__name__)

DEFAULT_SECTION_ID = "home"
DEFAULT_BADGE_CAP = 99

SectionConfig = Union[NavSection, Mapping[str, Any]]


class NavConfig(NamedTuple):
    sections: Tuple[NavSection, ...]
    aliases: Dict[str, str]


# ---------------------------------------------------------------------------
# Tree construction
# ---------------------------------------------------------------------------


def _coerce_section(entry: SectionConfig) -> NavSection:
    if isinstance(entry, NavSection):
        return entry
    try:
        return NavSection.model_validate(entry)
    except ValidationError as exc:
        raise InvariantViolation(f"invalid navigation section: {exc}") from exc


def iter_sections(sections: Iterable[NavSection]) -> Iterator[Tuple[NavSection, NavSection]]:
    """Yield ``(section, top_level_section)`` pairs depth first."""

    for top in sections:
        for section in top.walk():
            yield section, top


def build_nav_tree(config: Iterable[SectionConfig]) -> Tuple[NavSection, ...]:
    """Build the navigation tree, failing fast on duplicate section ids."""

    sections = tuple(_coerce_section(entry) for entry in config)
    seen: Dict[str, int] = {}
    for section, _top in iter_sections(sections):
        seen[section.id] = seen.get(section.id, 0) + 1
    duplicates = sorted(key for key, count in seen.items() if count > 1)
    if duplicates:
        raise InvariantViolation(
            "navigation section ids must be unique; duplicated: " + ", ".join(duplicates)
        )
    return sections


def validate_alias_table(
    aliases: Mapping[str, str], sections: Iterable[NavSection]
) -> Dict[str, str]:
    """Return a copy of ``aliases`` after checking every target is a top-level id."""

    top_level = {section.id for section in sections}
    unknown = sorted(
        f"{segment}->{target}" for segment, target in aliases.items() if target not in top_level
    )
    if unknown:
        raise InvariantViolation("alias targets must be top-level sections: " + ", ".join(unknown))
    return {str(segment).strip("/"): str(target) for segment, target in aliases.items()}


def find_section(sections: Iterable[NavSection], section_id: str) -> Optional[NavSection]:
    for section, _top in iter_sections(sections):
        if section.id == section_id:
            return section
    return None


def load_nav_config(path: Union[str, Path]) -> NavConfig:
    """Load ``{"sections": [...], "aliases": {...}}`` from a JSON file."""

    with open(path, "r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise InvariantViolation("navigation config must be a JSON object")
    raw_sections = payload.get("sections")
    if not isinstance(raw_sections, list) or not raw_sections:
        raise InvariantViolation("navigation config requires a non-empty 'sections' list")
    sections = build_nav_tree(raw_sections)
    raw_aliases = payload.get("aliases") or {}
    if not isinstance(raw_aliases, dict):
        raise InvariantViolation("'aliases' must be an object mapping path segments to ids")
    aliases = validate_alias_table(raw_aliases, sections)
    logger.info("nav_config_loaded", path=str(path), sections=len(sections), aliases=len(aliases))
    return NavConfig(sections=sections, aliases=aliases)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


def _coerce_count(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def apply_badge_counts(
    sections: Iterable[NavSection], counts: Mapping[str, Any]
) -> Tuple[NavSection, ...]:
    """Return a new tree whose badges reflect ``counts``.

    A refresh replaces every badge: sections missing from ``counts`` drop
    back to zero, matching a notification endpoint that only reports
    non-zero categories.
    """

    def _apply(section: NavSection) -> NavSection:
        return section.model_copy(
            update={
                "badge_count": _coerce_count(counts.get(section.id)),
                "children": tuple(_apply(child) for child in section.children),
            }
        )

    return tuple(_apply(section) for section in sections)


def format_badge(count: int, cap: int = DEFAULT_BADGE_CAP) -> str:
    """Return the badge label: empty for zero, ``"99+"`` above the cap."""

    count = _coerce_count(count)
    if count <= 0:
        return ""
    if count > cap:
        return f"{cap}+"
    return str(count)


# ---------------------------------------------------------------------------
# Active section resolution
# ---------------------------------------------------------------------------


def _first_segment(path: Any) -> Optional[str]:
    if not isinstance(path, str):
        return None
    path = path.split("?", 1)[0].split("#", 1)[0]
    return path.lstrip("/").split("/", 1)[0]


def _strip_leading_slash(path: str) -> str:
    return path[1:] if path.startswith("/") else path


def resolve_active_section(
    path: Any,
    alias_table: Optional[Mapping[str, str]],
    sections: Iterable[NavSection],
    default: str = DEFAULT_SECTION_ID,
) -> str:
    """Return the top-level section id that ``path`` belongs to.

    Aliases win over path matching.  A child section whose path matches
    reports its top-level ancestor.  Anything unresolvable yields
    ``default``.
    """

    segment = _first_segment(path)
    if segment is None:
        return default
    if alias_table and segment in alias_table:
        return alias_table[segment]
    for section, top in iter_sections(sections):
        if _strip_leading_slash(section.path) == segment:
            return top.id
    return default


# ---------------------------------------------------------------------------
# Expand / collapse
# ---------------------------------------------------------------------------


def toggle_section_expanded(state: Optional[ExpandState], section_id: str) -> ExpandState:
    """Flip ``section_id`` and return a new state; other keys are untouched."""

    state = state or ExpandState()
    expanded = dict(state.expanded)
    expanded[section_id] = not state.is_expanded(section_id)
    return state.model_copy(update={"expanded": expanded})


def set_section_expanded(
    state: Optional[ExpandState], section_id: str, expanded: bool
) -> ExpandState:
    state = state or ExpandState()
    flags = dict(state.expanded)
    flags[section_id] = bool(expanded)
    return state.model_copy(update={"expanded": flags})


def collapse_all() -> ExpandState:
    return ExpandState()


# ---------------------------------------------------------------------------
# Default practice sidebar
# ---------------------------------------------------------------------------

_DEFAULT_NAV_CONFIG: List[Dict[str, Any]] = [
    {"id": "home", "label": "Home", "path": "/"},
    {"id": "inbox", "label": "Inbox", "path": "/inbox"},
    {"id": "priorityAI", "label": "Priority AI", "path": "/priority-tasks"},
    {
        "id": "patients",
        "label": "Patients",
        "path": "/patients",
        "hasSubmenu": True,
        "children": [
            {"id": "chronicConditions", "label": "Chronic Conditions", "path": "/chronic-conditions"},
            {"id": "medicationRefills", "label": "Medication Refills", "path": "/medication-refills"},
            {"id": "urgentCare", "label": "Urgent Care", "path": "/urgent-care"},
        ],
    },
    {
        "id": "documents",
        "label": "Documents",
        "path": "/documents",
        "hasSubmenu": True,
        "children": [
            {"id": "insurancePaperwork", "label": "Insurance Paperwork", "path": "/insurance-paperwork"},
        ],
    },
    {"id": "messages", "label": "Messages", "path": "/messages"},
    {"id": "scheduler", "label": "Scheduler", "path": "/scheduler"},
    {"id": "forms", "label": "Forms", "path": "/forms"},
    {"id": "knowledgeBase", "label": "Knowledge Base", "path": "/knowledge-base"},
    {"id": "aiBilling", "label": "AI Billing", "path": "/ai-billing"},
    {"id": "education", "label": "Education", "path": "/education"},
    {"id": "subscription", "label": "Subscription", "path": "/subscription"},
    {
        "id": "settings",
        "label": "Settings",
        "path": "/settings",
        "hasSubmenu": True,
        "children": [
            {"id": "organizationProfile", "label": "Organization Profile", "path": "/organization-profile"},
            {"id": "teammates", "label": "Teammates", "path": "/teammates"},
        ],
    },
    {"id": "leadership", "label": "Leadership", "path": "/leadership-association"},
]

DEFAULT_NAV_SECTIONS: Tuple[NavSection, ...] = build_nav_tree(_DEFAULT_NAV_CONFIG)

DEFAULT_ALIAS_TABLE: Dict[str, str] = validate_alias_table(
    {
        "home": "home",
        "chronic-conditions": "patients",
        "medication-refills": "patients",
        "urgent-care": "patients",
        "insurance-paperwork": "documents",
        "organization-profile": "settings",
        "teammates": "settings",
        "priority-tasks": "priorityAI",
        "knowledge-base": "knowledgeBase",
        "ai-billing": "aiBilling",
        "leadership-association": "leadership",
    },
    DEFAULT_NAV_SECTIONS,
)


def default_nav_config() -> NavConfig:
    return NavConfig(sections=DEFAULT_NAV_SECTIONS, aliases=dict(DEFAULT_ALIAS_TABLE))


__all__ = [
    "DEFAULT_ALIAS_TABLE",
    "DEFAULT_NAV_SECTIONS",
    "DEFAULT_SECTION_ID",
    "NavConfig",
    "apply_badge_counts",
    "build_nav_tree",
    "collapse_all",
    "default_nav_config",
    "find_section",
    "format_badge",
    "iter_sections",
    "load_nav_config",
    "resolve_active_section",
    "set_section_expanded",
    "toggle_section_expanded",
    "validate_alias_table",
]
