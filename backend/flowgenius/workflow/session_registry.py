"""
Session Registry — in-memory map of live session states.

One registry is created by the app factory and passed by reference
to whoever needs it; there is no module-level singleton. All access
is serialized through a re-entrant lock.
"""

from __future__ import annotations

import threading
from logging import getLogger
from typing import Dict, List, Optional

from flowgenius.workflow.errors import SessionNotFoundError
from flowgenius.workflow.workflow_state import SessionState, make_initial_session_state

logger = getLogger(__name__)


class SessionRegistry:
    """Holds the latest ``SessionState`` per session id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionState] = {}
        self._lock = threading.RLock()

    # ── CRUD ──

    def create_session(self, session_id: str, user_id: Optional[str] = None) -> SessionState:
        """Create a fresh session, replacing any existing one with the same id."""
        state = make_initial_session_state(session_id, user_id=user_id)
        with self._lock:
            replaced = session_id in self._sessions
            self._sessions[session_id] = state
        if replaced:
            logger.info(f"[{session_id}] Session re-created (previous state discarded)")
        else:
            logger.info(f"[{session_id}] Session created")
        return state

    def get_session(self, session_id: str) -> Optional[SessionState]:
        with self._lock:
            return self._sessions.get(session_id)

    def require_session(self, session_id: str) -> SessionState:
        """Like ``get_session`` but raises on a miss.

        Raises:
            SessionNotFoundError: No session is bound to ``session_id``.
        """
        state = self.get_session(session_id)
        if state is None:
            raise SessionNotFoundError(session_id)
        return state

    def save_session(self, state: SessionState) -> None:
        """Store the latest state for its session id."""
        with self._lock:
            self._sessions[state.session_id] = state

    def replace_session(self, state: SessionState) -> bool:
        """Store ``state`` only if its session is still bound.

        Returns False when the session was cleared in the meantime, so a
        tick finishing after ``clear_session`` cannot bring it back.
        """
        with self._lock:
            if state.session_id not in self._sessions:
                return False
            self._sessions[state.session_id] = state
            return True

    def mark_processing(self, session_id: str, processing: bool) -> bool:
        """Set ``is_processing`` on the stored state, if bound."""
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return False
            self._sessions[session_id] = current.model_copy(update={"is_processing": processing})
            return True

    def clear_session(self, session_id: str) -> bool:
        """Remove a session. Missing ids are ignored."""
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info(f"[{session_id}] Session cleared")
        return removed

    def list_sessions(self) -> List[str]:
        with self._lock:
            return list(self._sessions.keys())

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
