"""
Transport payloads — the wire shapes crossing the client/service boundary.
"""

from __future__ import annotations

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from flowgenius.workflow.error_handler import WorkflowHealth
from flowgenius.workflow.state_validator import ValidationReport

T = TypeVar("T")


class TransportResult(BaseModel, Generic[T]):
    """Uniform result envelope. Handlers return one instead of raising."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    duration: Optional[int] = Field(default=None, description="Handler time in ms")

    @classmethod
    def ok(cls, data: Any = None, duration: Optional[int] = None) -> "TransportResult":
        return cls(success=True, data=data, duration=duration)

    @classmethod
    def fail(cls, error: str, duration: Optional[int] = None) -> "TransportResult":
        return cls(success=False, error=error, duration=duration)


class NodeExecutionStats(BaseModel):
    count: int
    avg_duration: int


class WorkflowMetrics(BaseModel):
    """Execution summary of a session's workflow logger."""

    workflow_id: str
    duration: int = 0
    event_count: int = 0
    error_count: int = 0
    node_executions: Dict[str, NodeExecutionStats] = Field(default_factory=dict)
    state_update_count: int = 0
    health: Optional[WorkflowHealth] = Field(default=None, description="Node health across all sessions")


class WorkflowSchema(BaseModel):
    """Node catalog and state field registry, for inspectors and editors."""

    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    state_fields: List[Dict[str, Any]] = Field(default_factory=list)
    available_models: List[str] = Field(default_factory=list)


# ── Request bodies ──

class ExecuteRequest(BaseModel):
    state: Dict[str, Any]


class CreateSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None


class ValidateStateRequest(BaseModel):
    state: Dict[str, Any]


class ResetHealthRequest(BaseModel):
    node_name: Optional[str] = None


__all__ = [
    "TransportResult",
    "NodeExecutionStats",
    "WorkflowMetrics",
    "WorkflowHealth",
    "WorkflowSchema",
    "ExecuteRequest",
    "CreateSessionRequest",
    "ValidateStateRequest",
    "ResetHealthRequest",
    "ValidationReport",
]
