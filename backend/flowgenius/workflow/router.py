"""
Router — pure decision function choosing the next node for a tick.

Evaluated once at the graph's START. Rules are checked top to bottom
and the first match wins:

    1. error is set                                   -> END
    2. is_processing is set                           -> END
    3. chat + voice pending + voice audio present     -> processVoiceInput
    4. chat                                           -> processUserTurn
    5. "Brainstorm Done" while in brainstorm          -> generateSummary
    6. anything else                                  -> END

The router never logs; the executor wraps it and records the
condition check and the chosen edge.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from langgraph.graph import END

from flowgenius.workflow.workflow_state import (
    STAGE_DONE_ACTIONS,
    Stage,
    UserAction,
    enum_value,
)


class RouteNames(str, Enum):
    """Graph node names plus the terminal marker."""
    PROCESS_USER_TURN = "processUserTurn"
    PROCESS_VOICE_INPUT = "processVoiceInput"
    GENERATE_SUMMARY = "generateSummary"
    END = END


PROCESS_USER_TURN = RouteNames.PROCESS_USER_TURN.value
PROCESS_VOICE_INPUT = RouteNames.PROCESS_VOICE_INPUT.value
GENERATE_SUMMARY = RouteNames.GENERATE_SUMMARY.value
DONE = RouteNames.END.value

NODE_NAMES = (PROCESS_USER_TURN, PROCESS_VOICE_INPUT, GENERATE_SUMMARY)


@dataclass(frozen=True)
class RouteDecision:
    """Chosen target plus the name of the rule that selected it."""
    target: str
    condition: str


def decide_route(state: Any) -> RouteDecision:
    if state.error:
        return RouteDecision(DONE, "has_error")
    if state.is_processing:
        return RouteDecision(DONE, "is_processing")

    action = enum_value(state.last_user_action)
    stage = enum_value(state.stage)

    if action == UserAction.CHAT.value:
        if state.voice_pending and state.voice_audio_data is not None:
            return RouteDecision(PROCESS_VOICE_INPUT, "voice_pending")
        return RouteDecision(PROCESS_USER_TURN, "chat")

    if action == UserAction.BRAINSTORM_DONE.value and stage == Stage.BRAINSTORM.value:
        return RouteDecision(GENERATE_SUMMARY, "brainstorm_done")

    return RouteDecision(DONE, "no_route")


def route_session(state: Any) -> str:
    """Name of the node to run next, or ``DONE``."""
    return decide_route(state).target


# ============================================================================
# Helpers
# ============================================================================


def should_transition_stage(state: Any) -> bool:
    """True when the action closes the current stage (never from prd)."""
    stage = enum_value(state.stage)
    if stage == Stage.PRD.value:
        return False
    done = STAGE_DONE_ACTIONS.get(stage)
    return done is not None and enum_value(state.last_user_action) == done.value


def should_continue_workflow(state: Any) -> bool:
    return (
        not state.error
        and not state.is_processing
        and enum_value(state.last_user_action) != UserAction.PRD_DONE.value
    )


def get_routing_description(state: Any) -> str:
    """Human-readable description of what the next tick would do."""
    target = route_session(state)
    if target == PROCESS_USER_TURN:
        return f"Processing user message in {enum_value(state.stage)} stage"
    if target == PROCESS_VOICE_INPUT:
        return "Transcribing voice input"
    if target == GENERATE_SUMMARY:
        return "Generating summary of brainstorming session"
    return "Workflow ended"
