"""
State Utilities — pure helpers around ``SessionState``.

    - Update helpers the UI side uses to build the next tick's input
      (append a message, attach voice input, mark a stage done, ...).
      Each returns a new state; the input is never mutated.
    - ``StateQuery`` read-only inspection helpers.
    - ``StateRecovery`` error-clearing helpers.
    - ``StateHistory`` / ``StateMonitor`` bounded diagnostics buffers
      fed by the workflow logger.
    - JSON persistence.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from logging import getLogger
from typing import Any, Deque, Dict, List, Optional

from flowgenius.workflow.state_validator import validate_session_state
from flowgenius.workflow.workflow_state import (
    STAGE_DONE_ACTIONS,
    Message,
    MessageRole,
    SessionState,
    Stage,
    UserAction,
    VoiceAudioData,
    enum_value,
    utcnow,
)

logger = getLogger(__name__)


# ============================================================================
# Update helpers
# ============================================================================


def _touch(state: SessionState, **updates: Any) -> SessionState:
    updates["updated_at"] = utcnow()
    return state.model_copy(update=updates)


def append_user_message(
    state: SessionState,
    content: str,
    image_url: Optional[str] = None,
) -> SessionState:
    """Append a user chat message and set the action to ``chat``."""
    message = Message(
        role=MessageRole.USER,
        content=content,
        image_url=image_url,
        stage_at_creation=state.stage,
    )
    return _touch(
        state,
        messages=[*state.messages, message],
        last_user_action=UserAction.CHAT,
    )


def attach_voice_input(state: SessionState, audio: VoiceAudioData) -> SessionState:
    """Queue a voice recording for transcription on the next tick."""
    return _touch(
        state,
        voice_audio_data=audio,
        voice_transcription=None,
        voice_pending=True,
        last_user_action=UserAction.CHAT,
    )


def mark_stage_done(state: SessionState) -> SessionState:
    """Set the "<Stage> Done" action matching the current stage."""
    action = STAGE_DONE_ACTIONS[enum_value(state.stage)]
    return _touch(state, last_user_action=action)


def rename_session(state: SessionState, title: str) -> SessionState:
    return _touch(state, title=title)


def update_user_prompt(state: SessionState, stage: Any, prompt: str) -> SessionState:
    key = Stage(enum_value(stage)).value
    return _touch(state, user_prompts={**state.user_prompts, key: prompt})


def update_selected_model(state: SessionState, stage: Any, model: str) -> SessionState:
    key = Stage(enum_value(stage)).value
    return _touch(state, selected_models={**state.selected_models, key: model})


def dismiss_error(state: SessionState) -> SessionState:
    """Local banner dismissal; the next successful tick clears it canonically."""
    return state.model_copy(update={"error": None})


# ============================================================================
# Query
# ============================================================================


class StateQuery:
    """Read-only inspection helpers."""

    @staticmethod
    def get_messages_by_role(state: SessionState, role: Any) -> List[Message]:
        role_value = enum_value(role)
        return [m for m in state.messages if m.role.value == role_value]

    @staticmethod
    def get_messages_for_current_stage(state: SessionState) -> List[Message]:
        return [m for m in state.messages if m.stage_at_creation == state.stage]

    @staticmethod
    def get_last_n_messages(state: SessionState, n: int) -> List[Message]:
        if n <= 0:
            return []
        return list(state.messages[-n:])

    @staticmethod
    def has_error(state: SessionState) -> bool:
        return bool(state.error)

    @staticmethod
    def is_ready_for_stage_transition(state: SessionState) -> bool:
        """True when the action closes exactly the current stage."""
        if state.last_user_action == UserAction.CHAT:
            return False
        return STAGE_DONE_ACTIONS[enum_value(state.stage)] == state.last_user_action

    @staticmethod
    def get_conversation_context(state: SessionState, max_messages: int = 10) -> List[Message]:
        """Recent messages, collapsing consecutive messages from the same role."""
        context: List[Message] = []
        last_role: Optional[MessageRole] = None
        for msg in state.messages[-max_messages:]:
            if msg.role != last_role:
                context.append(msg)
                last_role = msg.role
        return context


# ============================================================================
# Recovery
# ============================================================================


class StateRecovery:
    """Helpers for bringing an erroring session back to a runnable state."""

    @staticmethod
    def clear_error(state: SessionState) -> SessionState:
        return _touch(state, error=None)

    @staticmethod
    def reset_to_safe_state(state: SessionState) -> SessionState:
        """Keep messages, drop processing/error flags, return to chat."""
        return _touch(
            state,
            is_processing=False,
            error=None,
            last_user_action=UserAction.CHAT,
        )


# ============================================================================
# History & Metrics
# ============================================================================


@dataclass
class StateSnapshot:
    state: SessionState
    node_name: str
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)


class StateHistory:
    """Bounded buffer of deep-copied state snapshots."""

    def __init__(self, max_history_size: int = 100) -> None:
        self._history: Deque[StateSnapshot] = deque(maxlen=max_history_size)

    def add_snapshot(
        self,
        state: SessionState,
        node_name: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._history.append(
            StateSnapshot(
                state=state.model_copy(deep=True),
                node_name=node_name,
                metadata=dict(metadata or {}),
            )
        )

    def get_latest_snapshot(self) -> Optional[StateSnapshot]:
        return self._history[-1] if self._history else None

    def get_snapshots_by_stage(self, stage: Any) -> List[StateSnapshot]:
        value = enum_value(stage)
        return [s for s in self._history if s.state.stage.value == value]

    def get_snapshots_by_time_range(self, start: datetime, end: datetime) -> List[StateSnapshot]:
        return [s for s in self._history if start <= s.timestamp <= end]

    def clear(self) -> None:
        self._history.clear()

    def __len__(self) -> int:
        return len(self._history)


class StateMonitor:
    """Named numeric metric series, each capped at ``max_values``."""

    def __init__(self, max_values: int = 100) -> None:
        self._max_values = max_values
        self._metrics: Dict[str, Deque[float]] = {}

    def record_metric(self, name: str, value: float) -> None:
        series = self._metrics.setdefault(name, deque(maxlen=self._max_values))
        series.append(value)

    def get_average(self, name: str) -> Optional[float]:
        values = self._metrics.get(name)
        if not values:
            return None
        return sum(values) / len(values)

    def get_summary(self) -> Dict[str, Dict[str, float]]:
        summary: Dict[str, Dict[str, float]] = {}
        for name, values in self._metrics.items():
            if not values:
                continue
            summary[name] = {
                "avg": sum(values) / len(values),
                "min": min(values),
                "max": max(values),
                "count": len(values),
            }
        return summary


# ============================================================================
# Persistence
# ============================================================================


def serialize_state(state: SessionState) -> str:
    return state.model_dump_json()


def deserialize_state(serialized: str) -> SessionState:
    """Parse and validate a stored session."""
    state = SessionState.model_validate_json(serialized)
    validate_session_state(state)
    return state
