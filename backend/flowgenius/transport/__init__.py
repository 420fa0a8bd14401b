"""
Transport Package.

Result-returning request handler, FastAPI routes and the retrying
client that sit between the UI process and the workflow core.
"""

from flowgenius.transport.client import HttpChannel, LocalChannel, WorkflowClient
from flowgenius.transport.handler import WorkflowRequestHandler
from flowgenius.transport.models import (
    CreateSessionRequest,
    ExecuteRequest,
    NodeExecutionStats,
    ResetHealthRequest,
    TransportResult,
    ValidateStateRequest,
    ValidationReport,
    WorkflowHealth,
    WorkflowMetrics,
    WorkflowSchema,
)

__all__ = [
    "HttpChannel",
    "LocalChannel",
    "WorkflowClient",
    "WorkflowRequestHandler",
    "CreateSessionRequest",
    "ExecuteRequest",
    "NodeExecutionStats",
    "ResetHealthRequest",
    "TransportResult",
    "ValidateStateRequest",
    "ValidationReport",
    "WorkflowHealth",
    "WorkflowMetrics",
    "WorkflowSchema",
]
