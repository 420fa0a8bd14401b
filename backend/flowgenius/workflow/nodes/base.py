"""
Node Base — abstract node contract, execution context and registry.

A node is an async function of the session state that returns a
sparse ``SessionPatch``. Nodes never raise on runtime failures: they
fold them into the patch as ``{"is_processing": False, "error": ...}``.
Only input-validation failures propagate to the executor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar

from flowgenius.workflow.workflow_state import NodeStateUsage, SessionPatch, SessionState, utcnow

if TYPE_CHECKING:
    from flowgenius.capabilities.base import CapabilityProvider
    from flowgenius.logging.workflow_logger import WorkflowLogger
    from flowgenius.workflow.error_handler import NodeErrorHandler

logger = getLogger(__name__)


@dataclass
class ExecutionContext:
    """Per-tick services handed to a node."""
    session_id: str
    capabilities: "CapabilityProvider"
    workflow_logger: Optional["WorkflowLogger"] = None
    error_handler: Optional["NodeErrorHandler"] = None

    async def call_capability(self, node_name: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Await a capability, retried and circuit-broken when a handler is set."""
        if self.error_handler is None:
            return await fn(*args)
        return await self.error_handler.call(node_name, fn, *args)


def make_patch(**fields: Any) -> SessionPatch:
    """Build a patch stamped with ``updated_at``."""
    fields["updated_at"] = utcnow()
    return fields  # type: ignore[return-value]


def error_patch(error: BaseException, **fields: Any) -> SessionPatch:
    """Patch reporting a node runtime failure as session state."""
    return make_patch(is_processing=False, error=str(error) or type(error).__name__, **fields)


class BaseNode(ABC):
    """Abstract base for every workflow node.

    Subclasses set the class attributes and implement ``execute``.
    ``state_usage.writes`` must list every field the node may return;
    the executor rejects patches outside it.
    """

    node_type: str = ""
    label: str = ""
    description: str = ""
    category: str = "conversation"
    state_usage: NodeStateUsage = NodeStateUsage()

    @abstractmethod
    async def execute(
        self,
        state: SessionState,
        context: ExecutionContext,
    ) -> SessionPatch:
        ...

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_type": self.node_type,
            "label": self.label,
            "description": self.description,
            "category": self.category,
            "state_usage": {
                "reads": list(self.state_usage.reads),
                "writes": list(self.state_usage.writes),
            },
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.node_type}>"


# ============================================================================
# Registry
# ============================================================================

N = TypeVar("N", bound=Type[BaseNode])

# Node classes collected by @register_node, in declaration order
_NODE_CLASSES: List[Type[BaseNode]] = []


def register_node(cls: N) -> N:
    """Class decorator marking a node as built-in."""
    if not cls.node_type:
        raise ValueError(f"{cls.__name__} must define node_type")
    _NODE_CLASSES.append(cls)
    return cls


class NodeRegistry:
    """Maps node names to node instances."""

    def __init__(self) -> None:
        self._nodes: Dict[str, BaseNode] = {}

    def register(self, node: BaseNode) -> None:
        if node.node_type in self._nodes:
            logger.warning(f"Node type '{node.node_type}' re-registered, replacing")
        self._nodes[node.node_type] = node

    def get(self, node_type: str) -> Optional[BaseNode]:
        return self._nodes.get(node_type)

    def require(self, node_type: str) -> BaseNode:
        node = self._nodes.get(node_type)
        if node is None:
            raise KeyError(f"Unknown node type: {node_type}")
        return node

    def list_all(self) -> List[BaseNode]:
        return list(self._nodes.values())

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)


def registered_node_classes() -> List[Type[BaseNode]]:
    return list(_NODE_CLASSES)


def make_registry(factories: List[Callable[[], BaseNode]]) -> NodeRegistry:
    registry = NodeRegistry()
    for factory in factories:
        registry.register(factory())
    return registry
