"""Value objects shared by the navigation and triage controllers.

Every model is frozen.  Transitions in :mod:`clinicnav.navigation` and
:mod:`clinicnav.triage` return new instances (``model_copy``) instead of
mutating their inputs, which lets a rendering layer detect changes with a
plain identity or equality check.  Attributes are snake_case in Python and
camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from clinicnav.time_utils import coerce_timestamp, utc_now


class InvariantViolation(ValueError):
    """Raised when navigation configuration breaks a structural invariant."""


class _FrozenModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class NavSection(_FrozenModel):
    """A navigation entry, optionally carrying collapsible children."""

    id: str = Field(min_length=1)
    label: str
    path: str
    badge_count: int = 0
    has_submenu: bool = False
    children: Tuple["NavSection", ...] = ()

    @field_validator("badge_count", mode="before")
    @classmethod
    def _clamp_badge(cls, value: Any) -> int:
        if value is None or isinstance(value, bool):
            return 0
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 0

    @model_validator(mode="after")
    def _children_require_submenu(self) -> "NavSection":
        if self.children and not self.has_submenu:
            raise ValueError(
                f"section {self.id!r} has children but hasSubmenu is false"
            )
        return self

    def walk(self) -> Iterator["NavSection"]:
        yield self
        for child in self.children:
            yield from child.walk()


class ExpandState(_FrozenModel):
    """Per-section expand/collapse flags; unknown ids are collapsed."""

    expanded: Dict[str, bool] = Field(default_factory=dict)

    def is_expanded(self, section_id: str) -> bool:
        return bool(self.expanded.get(section_id, False))

    def expanded_ids(self) -> Tuple[str, ...]:
        return tuple(key for key, value in self.expanded.items() if value)


class TriageItem(_FrozenModel):
    """A conversation (or any other queue entry) awaiting triage."""

    id: int
    has_unread: bool = False
    is_active: bool = False
    last_activity: datetime = Field(default_factory=utc_now)
    display_name: str = ""

    @field_validator("last_activity", mode="before")
    @classmethod
    def _normalise_timestamp(cls, value: Any) -> datetime:
        if value is None:
            return utc_now()
        parsed = coerce_timestamp(value)
        if parsed is None:
            raise ValueError(f"invalid lastActivity timestamp: {value!r}")
        return parsed


class TriageQueueState(_FrozenModel):
    """Active/hidden partitions of the triage queue plus the selection."""

    active_items: Tuple[TriageItem, ...] = ()
    hidden_items: Tuple[TriageItem, ...] = ()
    selected_id: Optional[int] = None
    filter_text: str = ""

    def find_active(self, item_id: int) -> Optional[TriageItem]:
        for item in self.active_items:
            if item.id == item_id:
                return item
        return None

    def find_hidden(self, item_id: int) -> Optional[TriageItem]:
        for item in self.hidden_items:
            if item.id == item_id:
                return item
        return None

    def contains(self, item_id: int) -> bool:
        return (
            self.find_active(item_id) is not None
            or self.find_hidden(item_id) is not None
        )

    def selected_item(self) -> Optional[TriageItem]:
        if self.selected_id is None:
            return None
        return self.find_active(self.selected_id) or self.find_hidden(self.selected_id)


class FilteredView(_FrozenModel):
    filtered_active: Tuple[TriageItem, ...] = ()
    filtered_hidden: Tuple[TriageItem, ...] = ()


class QueueCounts(_FrozenModel):
    """Badge counters for the conversation list tabs."""

    new: int = 0
    ongoing: int = 0
    hidden: int = 0
    total: int = 0


class TriageTab(str, Enum):
    NEW = "new"
    ONGOING = "ongoing"
    ALL = "all"
    HIDDEN = "hidden"


__all__ = [
    "ExpandState",
    "FilteredView",
    "InvariantViolation",
    "NavSection",
    "QueueCounts",
    "TriageItem",
    "TriageQueueState",
    "TriageTab",
]
