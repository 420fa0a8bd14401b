"""
Workflow Request Handler — service side of the transport boundary.

Every operation returns a ``TransportResult`` and never raises. One
``WorkflowLogger`` is kept per session and reused across ticks so
that ``get_metrics`` reports the session's whole history.
"""

from __future__ import annotations

import time
from logging import getLogger
from typing import Any, Dict, Mapping, Optional, Union

from flowgenius.logging.workflow_logger import WorkflowLogger, create_workflow_logger
from flowgenius.transport.models import TransportResult, WorkflowHealth, WorkflowMetrics, WorkflowSchema
from flowgenius.workflow.errors import SessionBusyError, SessionNotFoundError, StateValidationError
from flowgenius.workflow.session_registry import SessionRegistry
from flowgenius.workflow.state_utils import StateHistory, StateMonitor
from flowgenius.workflow.state_validator import ValidationReport, check_session_state
from flowgenius.workflow.workflow_executor import WorkflowExecutor
from flowgenius.workflow.workflow_state import AVAILABLE_MODELS, SessionState, get_all_state_fields

logger = getLogger(__name__)

StateInput = Union[SessionState, Mapping[str, Any]]


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


def _parse_state(state: StateInput) -> SessionState:
    """Check invariants first so callers get the validator's reasons."""
    report = check_session_state(state)
    if not report.is_valid:
        raise StateValidationError(f"Invalid state: {', '.join(report.issues)}")
    if isinstance(state, SessionState):
        return state
    return SessionState.model_validate(dict(state))


class WorkflowRequestHandler:
    """Adapts registry + executor to result-returning operations."""

    def __init__(
        self,
        registry: SessionRegistry,
        executor: WorkflowExecutor,
        debug_mode: bool = False,
        max_history: int = 100,
    ) -> None:
        self._registry = registry
        self._executor = executor
        self._debug_mode = debug_mode
        self._max_history = max_history
        self._loggers: Dict[str, WorkflowLogger] = {}

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def get_workflow_logger(self, session_id: str) -> Optional[WorkflowLogger]:
        return self._loggers.get(session_id)

    def _new_logger(self, session_id: str) -> WorkflowLogger:
        workflow_logger = create_workflow_logger(
            session_id,
            debug_mode=self._debug_mode,
            history=StateHistory(self._max_history),
            monitor=StateMonitor(self._max_history),
        )
        self._loggers[session_id] = workflow_logger
        return workflow_logger

    # ========================================================================
    # Operations
    # ========================================================================

    async def execute(self, state: StateInput) -> TransportResult[SessionState]:
        start = time.time()
        if isinstance(state, Mapping):
            session_id = state.get("session_id")
        else:
            session_id = getattr(state, "session_id", None)
        try:
            logger.info(f"[{session_id}] 📨 Executing workflow tick")
            session_state = _parse_state(state)
            session_id = session_state.session_id
            self._registry.require_session(session_id)
            if self._executor.is_busy(session_id):
                raise SessionBusyError(session_id)

            workflow_logger = self._loggers.get(session_id)
            if workflow_logger is None:
                workflow_logger = self._new_logger(session_id)

            # Readers see the stored session as processing until the tick ends
            self._registry.mark_processing(session_id, True)
            try:
                result = await self._executor.execute(session_state, workflow_logger)
            except Exception:
                self._registry.mark_processing(session_id, False)
                raise

            if not self._registry.replace_session(result):
                logger.warning(f"[{session_id}] Session cleared during tick, result discarded")
                raise SessionNotFoundError(session_id)

            duration = _elapsed_ms(start)
            logger.info(
                f"[{session_id}] ✅ Workflow tick completed in {duration}ms "
                f"(has_error={bool(result.error)})"
            )
            return TransportResult.ok(result, duration)

        except Exception as e:
            duration = _elapsed_ms(start)
            logger.error(f"[{session_id}] ❌ Workflow execution failed after {duration}ms: {e}")
            return TransportResult.fail(str(e), duration)

    async def create_session(
        self,
        session_id: str,
        user_id: Optional[str] = None,
    ) -> TransportResult[SessionState]:
        try:
            state = self._registry.create_session(session_id, user_id=user_id)
            self._new_logger(session_id)
            return TransportResult.ok(state)
        except Exception as e:
            logger.error(f"[{session_id}] ❌ Session creation failed: {e}")
            return TransportResult.fail(str(e))

    async def validate_state(self, state: Any) -> TransportResult[ValidationReport]:
        try:
            return TransportResult.ok(check_session_state(state))
        except Exception as e:
            return TransportResult.fail(str(e))

    async def get_metrics(self, session_id: str) -> TransportResult[WorkflowMetrics]:
        try:
            workflow_logger = self._loggers.get(session_id)
            if workflow_logger is None:
                return TransportResult.ok(None)
            summary = workflow_logger.get_execution_summary()
            summary["health"] = self._executor.error_handler.get_workflow_health()
            return TransportResult.ok(WorkflowMetrics.model_validate(summary))
        except Exception as e:
            return TransportResult.fail(str(e))

    async def get_health(self) -> TransportResult[WorkflowHealth]:
        try:
            return TransportResult.ok(self._executor.error_handler.get_workflow_health())
        except Exception as e:
            return TransportResult.fail(str(e))

    async def reset_node_health(self, node_name: Optional[str] = None) -> TransportResult[WorkflowHealth]:
        """Close circuits and zero counters for one node, or all of them."""
        try:
            error_handler = self._executor.error_handler
            error_handler.reset_node_health(node_name)
            return TransportResult.ok(error_handler.get_workflow_health())
        except Exception as e:
            return TransportResult.fail(str(e))

    async def get_schema(self) -> TransportResult[WorkflowSchema]:
        try:
            schema = WorkflowSchema(
                nodes=[node.to_dict() for node in self._executor.registry.list_all()],
                state_fields=[field.to_dict() for field in get_all_state_fields()],
                available_models=list(AVAILABLE_MODELS),
            )
            return TransportResult.ok(schema)
        except Exception as e:
            return TransportResult.fail(str(e))

    async def get_session(self, session_id: str) -> TransportResult[SessionState]:
        try:
            return TransportResult.ok(self._registry.require_session(session_id))
        except Exception as e:
            return TransportResult.fail(str(e))

    async def clear_session(self, session_id: str) -> TransportResult[None]:
        try:
            self._loggers.pop(session_id, None)
            self._registry.clear_session(session_id)
            logger.info(f"[{session_id}] 🧹 Session data cleared")
            return TransportResult.ok()
        except Exception as e:
            return TransportResult.fail(str(e))
