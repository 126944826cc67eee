"""In-memory view sessions.

Each browser view owns one :class:`NavigationSession`: the sidebar tree with
its badges, the expand/collapse flags and the triage queue.  Sessions are
ephemeral; they are rebuilt from upstream data whenever a client starts
over.  :class:`SessionStore` serialises every mutation behind one lock so
request handlers never interleave transitions for the same session.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

import structlog

from clinicnav.models import ExpandState, NavSection, TriageQueueState
from clinicnav.navigation import DEFAULT_SECTION_ID, NavConfig, default_nav_config
from clinicnav.observability import record_transition, set_active_sessions


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NavigationSession:
    session_id: str
    sections: Tuple[NavSection, ...]
    aliases: Dict[str, str]
    expand: ExpandState = field(default_factory=ExpandState)
    triage: TriageQueueState = field(default_factory=TriageQueueState)
    default_section: str = DEFAULT_SECTION_ID


SessionTransition = Callable[[NavigationSession], NavigationSession]
TriageTransition = Callable[[TriageQueueState], TriageQueueState]


class SessionStore:
    """Hold view sessions in memory with least-recently-used eviction."""

    def __init__(
        self,
        *,
        max_sessions: int = 500,
        nav_config: Optional[NavConfig] = None,
        default_section: str = DEFAULT_SECTION_ID,
    ) -> None:
        self.max_sessions = max(1, max_sessions)
        self._nav_config = nav_config or default_nav_config()
        self._default_section = default_section
        self._sessions: "OrderedDict[str, NavigationSession]" = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    @property
    def nav_config(self) -> NavConfig:
        return self._nav_config

    def _new_session(self, session_id: str) -> NavigationSession:
        return NavigationSession(
            session_id=session_id,
            sections=self._nav_config.sections,
            aliases=dict(self._nav_config.aliases),
            default_section=self._default_section,
        )

    def _get_or_create_locked(self, session_id: str) -> NavigationSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._new_session(session_id)
            self._sessions[session_id] = session
            logger.debug("view_session_created", session_id=session_id)
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info("view_session_evicted", session_id=evicted)
            set_active_sessions(len(self._sessions))
        else:
            self._sessions.move_to_end(session_id)
        return session

    def get(self, session_id: str) -> Optional[NavigationSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> NavigationSession:
        with self._lock:
            return self._get_or_create_locked(session_id)

    def update(self, session_id: str, transition: SessionTransition) -> NavigationSession:
        """Apply ``transition`` to the session atomically and store the result."""

        with self._lock:
            current = self._get_or_create_locked(session_id)
            updated = transition(current)
            self._sessions[session_id] = updated
            return updated

    def apply_triage(
        self, session_id: str, operation: str, transition: TriageTransition
    ) -> Tuple[NavigationSession, bool]:
        """Run a triage transition and report whether it changed anything."""

        with self._lock:
            current = self._get_or_create_locked(session_id)
            new_triage = transition(current.triage)
            applied = new_triage is not current.triage
            if applied:
                current = replace(current, triage=new_triage)
                self._sessions[session_id] = current
        record_transition(operation, applied)
        if not applied:
            logger.debug("triage_transition_noop", session_id=session_id, operation=operation)
        return current, applied

    def drop(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
            set_active_sessions(len(self._sessions))
        return removed

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            set_active_sessions(0)


__all__ = ["NavigationSession", "SessionStore"]
