"""
Workflow Nodes Package.

Importing this package registers the built-in node classes.
``build_node_registry`` returns a fresh registry holding one
instance of each.
"""

from logging import getLogger

from flowgenius.workflow.nodes.base import (
    BaseNode,
    ExecutionContext,
    NodeRegistry,
    error_patch,
    make_patch,
    make_registry,
    register_node,
    registered_node_classes,
)

# Import all node modules to trigger registration
from flowgenius.workflow.nodes import conversation_nodes  # noqa: F401
from flowgenius.workflow.nodes import summary_nodes       # noqa: F401

from flowgenius.workflow.nodes.conversation_nodes import (
    WELCOME_MESSAGE,
    ProcessUserTurnNode,
    ProcessVoiceInputNode,
)
from flowgenius.workflow.nodes.summary_nodes import NOTHING_TO_SUMMARIZE, GenerateSummaryNode


def build_node_registry() -> NodeRegistry:
    """Fresh registry with every built-in node."""
    registry = make_registry(registered_node_classes())
    getLogger(__name__).debug(f"Workflow nodes registered: {len(registry)} node types")
    return registry


__all__ = [
    "BaseNode",
    "ExecutionContext",
    "NodeRegistry",
    "error_patch",
    "make_patch",
    "register_node",
    "build_node_registry",
    "ProcessUserTurnNode",
    "ProcessVoiceInputNode",
    "GenerateSummaryNode",
    "WELCOME_MESSAGE",
    "NOTHING_TO_SUMMARIZE",
]
