"""
Workflow Core — session state machine for FlowGenius.

Architecture:
    workflow_state    — SessionState model, enums, field registry
    state_validator   — structural invariant checks
    state_utils       — update helpers, query/recovery, history/metrics
    router            — pure next-node decision
    nodes/            — BaseNode ABC + processUserTurn / processVoiceInput / generateSummary
    workflow_executor — compiles the LangGraph and runs one tick per call
    session_registry  — in-memory live session map
    error_handler     — capability retry, circuit breaker and node health
    errors            — exception taxonomy

The executor and nodes are imported from their modules directly;
this package only re-exports the leaf modules.
"""

from flowgenius.workflow.errors import (
    CapabilityError,
    ExecutionError,
    PatchViolationError,
    SessionBusyError,
    SessionNotFoundError,
    StateValidationError,
    TransportError,
    WorkflowError,
)
from flowgenius.workflow.error_handler import NodeErrorHandler, RetryPolicy, WorkflowHealth
from flowgenius.workflow.router import RouteDecision, RouteNames, decide_route, route_session
from flowgenius.workflow.session_registry import SessionRegistry
from flowgenius.workflow.state_validator import (
    ValidationReport,
    check_session_state,
    is_session_state,
    validate_session_state,
)
from flowgenius.workflow.workflow_state import (
    Message,
    MessageRole,
    NodeStateUsage,
    ReducerType,
    SessionPatch,
    SessionState,
    Stage,
    StateFieldCategory,
    StateFieldDef,
    UserAction,
    VoiceAudioData,
    get_all_state_fields,
    get_state_field,
    get_state_fields_by_category,
    make_initial_session_state,
)

__all__ = [
    "CapabilityError",
    "ExecutionError",
    "PatchViolationError",
    "SessionBusyError",
    "SessionNotFoundError",
    "StateValidationError",
    "TransportError",
    "WorkflowError",
    "NodeErrorHandler",
    "RetryPolicy",
    "WorkflowHealth",
    "RouteDecision",
    "RouteNames",
    "decide_route",
    "route_session",
    "SessionRegistry",
    "ValidationReport",
    "check_session_state",
    "is_session_state",
    "validate_session_state",
    "Message",
    "MessageRole",
    "NodeStateUsage",
    "ReducerType",
    "SessionPatch",
    "SessionState",
    "Stage",
    "StateFieldCategory",
    "StateFieldDef",
    "UserAction",
    "VoiceAudioData",
    "get_all_state_fields",
    "get_state_field",
    "get_state_fields_by_category",
    "make_initial_session_state",
]
