"""Conversation triage queue transitions.

The queue keeps two partitions: *active* items still needing attention
(unread, or explicitly kept open) and *hidden* items already dealt with.
Every function here is a pure transition ``state -> state``; inputs are
never mutated and an operation that targets an id missing from the relevant
partition returns the input object itself.  Returning the same object lets
callers tell a no-op from an applied transition with ``is``.

Upstream refreshes are full replacements (:func:`repartition`), not patches:
local hide/restore decisions last only until the next snapshot arrives.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import structlog

from clinicnav.models import (
    FilteredView,
    QueueCounts,
    TriageItem,
    TriageQueueState,
    TriageTab,
)


logger = structlog.get_logger(__name__)

ItemLike = Union[TriageItem, Mapping[str, Any]]


def _coerce_item(item: ItemLike) -> TriageItem:
    if isinstance(item, TriageItem):
        return item
    return TriageItem.model_validate(item)


def _needs_attention(item: TriageItem) -> bool:
    return item.has_unread or item.is_active


def _auto_select(active_items: Tuple[TriageItem, ...]) -> Optional[int]:
    """First unread item wins; otherwise the first active item."""

    for item in active_items:
        if item.has_unread:
            return item.id
    if active_items:
        return active_items[0].id
    return None


def repartition(
    all_items: Iterable[ItemLike],
    previous_state: Optional[TriageQueueState] = None,
) -> TriageQueueState:
    """Rebuild both partitions from a fresh upstream snapshot.

    Duplicate ids collapse to a single entry: the last occurrence wins and
    keeps the position of the first.  A previous selection survives when its
    id is still present in the snapshot; otherwise, and when nothing was
    selected, the queue auto-selects (first unread, then first active).
    """

    previous = previous_state or TriageQueueState()
    by_id: Dict[int, TriageItem] = {}
    for raw in all_items:
        item = _coerce_item(raw)
        by_id[item.id] = item

    active = tuple(item for item in by_id.values() if _needs_attention(item))
    hidden = tuple(item for item in by_id.values() if not _needs_attention(item))

    selected_id = previous.selected_id
    if selected_id is not None and selected_id not in by_id:
        logger.debug("triage_selection_dropped", item_id=selected_id)
        selected_id = None
    if selected_id is None:
        selected_id = _auto_select(active)

    return TriageQueueState(
        active_items=active,
        hidden_items=hidden,
        selected_id=selected_id,
        filter_text=previous.filter_text,
    )


def select(state: TriageQueueState, item_id: int) -> TriageQueueState:
    """Select ``item_id`` and mark it read when it sits in the active partition."""

    active_item = state.find_active(item_id)
    if active_item is None and state.find_hidden(item_id) is None:
        logger.debug("triage_select_ignored", item_id=item_id)
        return state

    active_items = state.active_items
    if active_item is not None and active_item.has_unread:
        active_items = tuple(
            item.model_copy(update={"has_unread": False}) if item.id == item_id else item
            for item in state.active_items
        )
    return state.model_copy(update={"selected_id": item_id, "active_items": active_items})


def hide(state: TriageQueueState, item_id: int) -> TriageQueueState:
    """Move an active item to the hidden partition once its reply is done.

    When the hidden item was selected, selection moves to the first item
    left in the active partition, or clears when none remain.
    """

    target = state.find_active(item_id)
    if target is None:
        logger.debug("triage_hide_ignored", item_id=item_id)
        return state

    remaining = tuple(item for item in state.active_items if item.id != item_id)
    hidden_item = target.model_copy(update={"is_active": False, "has_unread": False})

    selected_id = state.selected_id
    if selected_id == item_id:
        selected_id = remaining[0].id if remaining else None

    return state.model_copy(
        update={
            "active_items": remaining,
            "hidden_items": state.hidden_items + (hidden_item,),
            "selected_id": selected_id,
        }
    )


def restore(state: TriageQueueState, item_id: int) -> TriageQueueState:
    """Bring a hidden item back into the active partition and focus it."""

    target = state.find_hidden(item_id)
    if target is None:
        logger.debug("triage_restore_ignored", item_id=item_id)
        return state

    restored = target.model_copy(update={"is_active": True})
    return state.model_copy(
        update={
            "active_items": state.active_items + (restored,),
            "hidden_items": tuple(item for item in state.hidden_items if item.id != item_id),
            "selected_id": item_id,
        }
    )


def clear_selection(state: TriageQueueState) -> TriageQueueState:
    if state.selected_id is None:
        return state
    return state.model_copy(update={"selected_id": None})


def set_filter(state: TriageQueueState, text: Optional[str]) -> TriageQueueState:
    text = text or ""
    if text == state.filter_text:
        return state
    return state.model_copy(update={"filter_text": text})


def _matches(item: TriageItem, needle: str) -> bool:
    return needle in item.display_name.casefold()


def filter_queue(state: TriageQueueState, text: Optional[str] = None) -> FilteredView:
    """Return both partitions narrowed to display names containing ``text``.

    Matching is case-insensitive.  ``text=None`` uses the state's stored
    filter; an empty filter returns both partitions as they are.
    """

    raw = state.filter_text if text is None else text
    if not raw:
        return FilteredView(
            filtered_active=state.active_items,
            filtered_hidden=state.hidden_items,
        )
    needle = raw.casefold()
    return FilteredView(
        filtered_active=tuple(item for item in state.active_items if _matches(item, needle)),
        filtered_hidden=tuple(item for item in state.hidden_items if _matches(item, needle)),
    )


def queue_counts(state: TriageQueueState) -> QueueCounts:
    new = sum(1 for item in state.active_items if item.has_unread)
    ongoing = len(state.active_items) - new
    hidden = len(state.hidden_items)
    return QueueCounts(new=new, ongoing=ongoing, hidden=hidden, total=new + ongoing + hidden)


def tab_items(
    state: TriageQueueState,
    tab: Union[TriageTab, str],
    text: Optional[str] = None,
) -> Tuple[TriageItem, ...]:
    """Return the items listed under a conversation tab after text filtering."""

    tab = TriageTab(tab)
    view = filter_queue(state, text)
    if tab is TriageTab.NEW:
        return tuple(item for item in view.filtered_active if item.has_unread)
    if tab is TriageTab.ONGOING:
        return tuple(item for item in view.filtered_active if not item.has_unread)
    if tab is TriageTab.ALL:
        return view.filtered_active
    return view.filtered_hidden


__all__ = [
    "clear_selection",
    "filter_queue",
    "hide",
    "queue_counts",
    "repartition",
    "restore",
    "select",
    "set_filter",
    "tab_items",
]
