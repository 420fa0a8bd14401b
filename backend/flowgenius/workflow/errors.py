"""
Workflow Errors — exception taxonomy for the session workflow.

Validation errors always reach the caller. Node-runtime failures
(``CapabilityError``) are caught inside nodes and folded into the
session's ``error`` field. Transport failures are retried by the
client before surfacing.
"""

from __future__ import annotations

from typing import List, Optional


class WorkflowError(Exception):
    """Base class for every error raised by the workflow core."""


class StateValidationError(WorkflowError):
    """A session state violates a structural invariant."""

    def __init__(self, reason: str, field: Optional[str] = None) -> None:
        self.reason = reason
        self.field = field
        super().__init__(reason)


class ExecutionError(WorkflowError):
    """A tick failed outside the node error-patch convention."""

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        node_name: Optional[str] = None,
    ) -> None:
        self.session_id = session_id
        self.node_name = node_name
        super().__init__(message)


class PatchViolationError(ExecutionError):
    """A node returned fields it did not declare in ``state_usage.writes``."""

    def __init__(self, node_name: str, fields: List[str]) -> None:
        self.fields = list(fields)
        super().__init__(
            f"Node '{node_name}' wrote undeclared state fields: "
            + ", ".join(self.fields),
            node_name=node_name,
        )


class SessionBusyError(ExecutionError):
    """A second tick was requested while one is in flight for the session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session '{session_id}' already has a tick in flight",
            session_id=session_id,
        )


class CapabilityError(WorkflowError):
    """An injected capability is missing or failed.

    ``transient`` marks failures worth retrying (timeouts, rate limits,
    dropped connections).
    """

    def __init__(self, message: str, transient: bool = False) -> None:
        self.transient = transient
        super().__init__(message)


class SessionNotFoundError(WorkflowError):
    """No live session is bound to the requested id."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class TransportError(WorkflowError):
    """A call across the transport boundary failed."""

    def __init__(self, message: str, attempts: int = 1) -> None:
        self.attempts = attempts
        super().__init__(message)
