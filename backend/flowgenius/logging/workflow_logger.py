"""
Workflow Logger — structured per-session event log.

Records workflow start/end, node enter/exit/error, edge transitions,
state updates and condition checks pushed by the executor. Derived
views (summary, timeline, export) feed the transport ``getMetrics``
operation. The logger observes only; it never influences control flow.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from logging import getLogger
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic_core import to_jsonable_python

from flowgenius.workflow.state_utils import StateHistory, StateMonitor
from flowgenius.workflow.workflow_state import SessionState, utcnow

logger = getLogger(__name__)


class WorkflowEventType(str, Enum):
    WORKFLOW_START = "WORKFLOW_START"
    WORKFLOW_END = "WORKFLOW_END"
    NODE_ENTER = "NODE_ENTER"
    NODE_EXIT = "NODE_EXIT"
    NODE_ERROR = "NODE_ERROR"
    EDGE_TRANSITION = "EDGE_TRANSITION"
    STATE_UPDATE = "STATE_UPDATE"
    CONDITION_CHECK = "CONDITION_CHECK"
    WORKFLOW_ERROR = "WORKFLOW_ERROR"


@dataclass
class WorkflowEvent:
    type: WorkflowEventType
    timestamp: datetime = field(default_factory=utcnow)
    node_name: Optional[str] = None
    edge_name: Optional[str] = None
    state: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "node_name": self.node_name,
            "edge_name": self.edge_name,
            "state": self.state,
            "error": self.error,
            "metadata": self.metadata,
            "duration_ms": self.duration_ms,
        }


@dataclass
class WorkflowContext:
    workflow_id: str
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    events: List[WorkflowEvent] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    total_duration_ms: Optional[int] = None
    node_executions: Dict[str, List[int]] = field(default_factory=dict)
    state_updates: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "events": [e.to_dict() for e in self.events],
            "errors": list(self.errors),
            "total_duration_ms": self.total_duration_ms,
            "node_executions": {k: list(v) for k, v in self.node_executions.items()},
            "state_updates": self.state_updates,
        }


def _state_summary(state: SessionState) -> Dict[str, Any]:
    """Compact state view stored on events.

    Tolerates structurally invalid states, which are logged before
    validation rejects them.
    """
    stage = getattr(state, "stage", None)
    action = getattr(state, "last_user_action", None)
    messages = getattr(state, "messages", None)
    return {
        "session_id": getattr(state, "session_id", None),
        "stage": getattr(stage, "value", stage),
        "last_user_action": getattr(action, "value", action),
        "messages_count": len(messages) if isinstance(messages, (list, tuple)) else 0,
        "is_processing": bool(getattr(state, "is_processing", False)),
        "has_error": bool(getattr(state, "error", None)),
    }


def _update_summary(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """Bounded view of a patch: scalar values as-is, collections as counts."""
    summary: Dict[str, Any] = {"updated_fields": list(updates.keys())}
    for key, value in updates.items():
        if isinstance(value, (list, tuple, dict)):
            summary[f"{key}_count"] = len(value)
        else:
            summary[key] = to_jsonable_python(value)
    return summary


def _elapsed_ms(since: float) -> int:
    return int((time.perf_counter() - since) * 1000)


class WorkflowLogger:
    """Append-only event log scoped to one workflow/session id."""

    def __init__(
        self,
        workflow_id: str,
        debug_mode: bool = False,
        history: Optional[StateHistory] = None,
        monitor: Optional[StateMonitor] = None,
        debug_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._context = WorkflowContext(workflow_id=workflow_id)
        self._debug_mode = debug_mode
        self._history = history
        self._monitor = monitor
        self._debug_sink = debug_sink or logger.info
        self._current_node: Optional[str] = None
        self._node_started: Optional[float] = None

        logger.info(f"🚀 Workflow logger initialized: {workflow_id} (debug={debug_mode})")

    @property
    def workflow_id(self) -> str:
        return self._context.workflow_id

    @property
    def debug_mode(self) -> bool:
        return self._debug_mode

    @property
    def events(self) -> List[WorkflowEvent]:
        return list(self._context.events)

    # ========================================================================
    # Event recording
    # ========================================================================

    def log_workflow_start(self, state: SessionState) -> float:
        """Record the start of a tick and return its ``perf_counter`` mark.

        Pass the mark to ``log_workflow_end`` of the same call.
        """
        started = time.perf_counter()
        self._add_event(WorkflowEvent(
            type=WorkflowEventType.WORKFLOW_START,
            state=_state_summary(state),
        ))
        if self._debug_mode:
            logger.debug(
                f"[{self.workflow_id}] 🎬 Workflow started "
                f"(stage={_state_summary(state)['stage']}, "
                f"action={_state_summary(state)['last_user_action']})"
            )
        return started

    def log_workflow_end(self, state: SessionState, started_at: Optional[float] = None) -> None:
        now = utcnow()
        duration = _elapsed_ms(started_at) if started_at is not None else 0
        self._context.end_time = now
        self._context.total_duration_ms = duration

        self._add_event(WorkflowEvent(
            type=WorkflowEventType.WORKFLOW_END,
            timestamp=now,
            state=_state_summary(state),
            duration_ms=duration,
            metadata={
                "total_events": len(self._context.events) + 1,
                "total_errors": len(self._context.errors),
            },
        ))
        logger.info(
            f"[{self.workflow_id}] 🏁 Workflow completed in {duration}ms "
            f"({len(self._context.events)} events, {len(self._context.errors)} errors)"
        )
        if self._debug_mode:
            self._print_debug_summary()

    def log_node_enter(self, node_name: str, state: SessionState) -> None:
        self._current_node = node_name
        self._node_started = time.perf_counter()
        self._add_event(WorkflowEvent(
            type=WorkflowEventType.NODE_ENTER,
            node_name=node_name,
            state=_state_summary(state),
        ))
        if self._history is not None:
            self._history.add_snapshot(state, node_name, {"event": "enter"})
        if self._debug_mode:
            logger.debug(f"[{self.workflow_id}] ➡️  Entering node: {node_name}")

    def log_node_exit(
        self,
        node_name: str,
        state: SessionState,
        updates: Optional[Mapping[str, Any]] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        if duration_ms is None:
            duration_ms = _elapsed_ms(self._node_started) if self._node_started is not None else 0
        updated_fields = list(updates.keys()) if updates else []

        self._add_event(WorkflowEvent(
            type=WorkflowEventType.NODE_EXIT,
            node_name=node_name,
            state=_state_summary(state),
            duration_ms=duration_ms,
            metadata={"updated_fields": updated_fields},
        ))
        self._track_node_execution(node_name, duration_ms)
        if self._history is not None:
            self._history.add_snapshot(state, node_name, {"event": "exit", "duration_ms": duration_ms})
        if self._debug_mode:
            logger.debug(
                f"[{self.workflow_id}] ⬅️  Exiting node: {node_name} "
                f"({duration_ms}ms, updated: {', '.join(updated_fields) or '-'})"
            )

        self._current_node = None
        self._node_started = None

    def log_node_error(self, node_name: str, error: BaseException, state: SessionState) -> None:
        message = str(error)
        self._add_event(WorkflowEvent(
            type=WorkflowEventType.NODE_ERROR,
            node_name=node_name,
            state=_state_summary(state),
            error=message,
            metadata={"error_type": type(error).__name__},
        ))
        self._context.errors.append(message)
        logger.error(f"[{self.workflow_id}] ❌ Node error in {node_name}: {message}")

    def log_edge_transition(
        self,
        from_node: str,
        to_node: str,
        condition: Optional[str] = None,
    ) -> None:
        self._add_event(WorkflowEvent(
            type=WorkflowEventType.EDGE_TRANSITION,
            edge_name=f"{from_node} -> {to_node}",
            metadata={"from_node": from_node, "to_node": to_node, "condition": condition},
        ))
        if self._debug_mode:
            logger.debug(
                f"[{self.workflow_id}] 🔀 Edge {from_node} -> {to_node} "
                f"({condition or 'direct'})"
            )

    def log_state_update(self, updates: Mapping[str, Any], source: str) -> None:
        self._context.state_updates += 1
        self._add_event(WorkflowEvent(
            type=WorkflowEventType.STATE_UPDATE,
            node_name=source,
            state=_update_summary(updates),
            metadata={
                "source": source,
                "updated_fields": list(updates.keys()),
                "update_count": self._context.state_updates,
            },
        ))
        if self._debug_mode:
            logger.debug(f"[{self.workflow_id}] 📝 State update from {source}: {list(updates.keys())}")

    def log_condition_check(
        self,
        condition: str,
        result: bool,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._add_event(WorkflowEvent(
            type=WorkflowEventType.CONDITION_CHECK,
            metadata={"condition": condition, "result": result, **(metadata or {})},
        ))
        if self._debug_mode:
            logger.debug(f"[{self.workflow_id}] ❓ Condition {condition} = {result}")

    def log_workflow_error(
        self,
        error: BaseException,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        message = str(error)
        self._add_event(WorkflowEvent(
            type=WorkflowEventType.WORKFLOW_ERROR,
            error=message,
            metadata={"error_type": type(error).__name__, "context": dict(context or {})},
        ))
        self._context.errors.append(message)
        logger.error(f"[{self.workflow_id}] 💥 Workflow error: {message}")

    # ========================================================================
    # Derived views
    # ========================================================================

    def get_events_by_type(self, event_type: WorkflowEventType) -> List[WorkflowEvent]:
        return [e for e in self._context.events if e.type == event_type]

    def get_execution_summary(self) -> Dict[str, Any]:
        node_stats: Dict[str, Dict[str, Any]] = {}
        for node, durations in self._context.node_executions.items():
            node_stats[node] = {
                "count": len(durations),
                "avg_duration": round(sum(durations) / len(durations)),
            }
        return {
            "workflow_id": self._context.workflow_id,
            "duration": self._context.total_duration_ms or 0,
            "event_count": len(self._context.events),
            "error_count": len(self._context.errors),
            "node_executions": node_stats,
            "state_update_count": self._context.state_updates,
        }

    def get_node_timeline(self) -> List[Dict[str, Any]]:
        """Pair each NODE_ENTER with the following NODE_EXIT."""
        timeline: List[Dict[str, Any]] = []
        pending: Optional[WorkflowEvent] = None
        for event in self._context.events:
            if event.type == WorkflowEventType.NODE_ENTER and event.node_name:
                pending = event
            elif event.type == WorkflowEventType.NODE_EXIT and event.node_name and pending:
                timeline.append({
                    "node": event.node_name,
                    "start_time": pending.timestamp,
                    "end_time": event.timestamp,
                    "duration": event.duration_ms or 0,
                })
                pending = None
        return timeline

    def export_logs(self) -> str:
        return json.dumps(
            {
                "context": self._context.to_dict(),
                "summary": self.get_execution_summary(),
                "timeline": to_jsonable_python(self.get_node_timeline()),
            },
            indent=2,
        )

    # ========================================================================
    # Internals
    # ========================================================================

    def _add_event(self, event: WorkflowEvent) -> None:
        self._context.events.append(event)
        if self._monitor is not None:
            self._monitor.record_metric("workflow_events_total", len(self._context.events))

    def _track_node_execution(self, node_name: str, duration_ms: int) -> None:
        self._context.node_executions.setdefault(node_name, []).append(duration_ms)
        if self._monitor is not None:
            self._monitor.record_metric(f"node_{node_name}_duration_ms", duration_ms)

    def _print_debug_summary(self) -> None:
        summary = self.get_execution_summary()
        lines = [
            "🔍 === WORKFLOW DEBUG SUMMARY ===",
            f"📋 Workflow ID: {summary['workflow_id']}",
            f"⏱️  Total Duration: {summary['duration']}ms",
            f"📊 Total Events: {summary['event_count']}",
            f"❌ Total Errors: {summary['error_count']}",
            f"📝 State Updates: {summary['state_update_count']}",
            "📈 Node Execution Stats:",
        ]
        for node, stats in summary["node_executions"].items():
            lines.append(f"  - {node}: {stats['count']} executions, avg {stats['avg_duration']}ms")
        if self._context.errors:
            lines.append("❌ Errors:")
            lines.extend(f"  {i}. {msg}" for i, msg in enumerate(self._context.errors, 1))
        lines.append("🔗 Node Timeline:")
        lines.extend(f"  {entry['node']}: {entry['duration']}ms" for entry in self.get_node_timeline())
        lines.append("================================")
        self._debug_sink("\n".join(lines))


def create_workflow_logger(
    workflow_id: Optional[str] = None,
    debug_mode: bool = False,
    **kwargs: Any,
) -> WorkflowLogger:
    """Create a logger, generating an id when none is given."""
    wid = workflow_id or f"workflow_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
    return WorkflowLogger(wid, debug_mode=debug_mode, **kwargs)
