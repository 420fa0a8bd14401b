"""
Workflow Logging Module

Provides per-session structured event logging for FlowGenius workflows.
"""
from flowgenius.logging.workflow_logger import (
    WorkflowContext,
    WorkflowEvent,
    WorkflowEventType,
    WorkflowLogger,
    create_workflow_logger,
)

__all__ = [
    'WorkflowContext',
    'WorkflowEvent',
    'WorkflowEventType',
    'WorkflowLogger',
    'create_workflow_logger',
]
