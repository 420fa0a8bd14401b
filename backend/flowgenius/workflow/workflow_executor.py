"""
Workflow Executor — run one tick of the session workflow on LangGraph.

The compiled graph has a single decision point at START: the router
picks exactly one node (or END), that node runs once, and every node
edges straight to END. One ``execute`` call is therefore one tick:

    validate -> route -> node -> merge patch -> return new state

Callers that want to advance further call ``execute`` again with the
returned state (or use ``run_until_idle``).
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from logging import getLogger
from typing import Any, Callable, Dict, Iterator, Optional, Set

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph

from flowgenius.capabilities.base import CapabilityProvider
from flowgenius.logging.workflow_logger import WorkflowLogger
from flowgenius.workflow.error_handler import NodeErrorHandler
from flowgenius.workflow.errors import (
    ExecutionError,
    PatchViolationError,
    SessionBusyError,
    StateValidationError,
    WorkflowError,
)
from flowgenius.workflow.nodes import BaseNode, ExecutionContext, NodeRegistry, build_node_registry
from flowgenius.workflow.router import (
    DONE,
    NODE_NAMES,
    RouteDecision,
    decide_route,
    route_session,
)
from flowgenius.workflow.state_validator import validate_session_state
from flowgenius.workflow.workflow_state import (
    SessionGraphState,
    SessionState,
    from_graph_state,
    to_graph_state,
    utcnow,
)

logger = getLogger(__name__)

_LOGGER_KEY = "workflow_logger"


def _workflow_logger(config: Optional[RunnableConfig]) -> Optional[WorkflowLogger]:
    if not config:
        return None
    return config.get("configurable", {}).get(_LOGGER_KEY)


class WorkflowExecutor:
    """Compile the session workflow and execute single ticks.

    Usage::

        executor = WorkflowExecutor(capabilities)
        state = make_initial_session_state("idea-1")
        state = await executor.execute(state, workflow_logger)
    """

    def __init__(
        self,
        capabilities: CapabilityProvider,
        registry: Optional[NodeRegistry] = None,
        error_handler: Optional[NodeErrorHandler] = None,
    ) -> None:
        self._capabilities = capabilities
        self._registry = registry or build_node_registry()
        self._error_handler = error_handler or NodeErrorHandler()
        self._error_handler.track_nodes(NODE_NAMES)
        self._graph: Optional[CompiledStateGraph] = None
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()

    # ========================================================================
    # Compilation
    # ========================================================================

    def compile(self) -> CompiledStateGraph:
        """Build START -(router)-> one node -> END.

        Raises:
            ValueError: If a routed node is missing from the registry.
        """
        missing = [name for name in NODE_NAMES if name not in self._registry]
        if missing:
            raise ValueError(f"Workflow nodes not registered: {', '.join(missing)}")

        graph_builder = StateGraph(SessionGraphState)

        # ── Nodes ──
        for name in NODE_NAMES:
            node_fn = self._make_node_function(self._registry.require(name))
            graph_builder.add_node(name, node_fn)
            graph_builder.add_edge(name, END)

        # ── Single decision point at START ──
        edge_map: Dict[str, str] = {name: name for name in NODE_NAMES}
        edge_map[DONE] = END
        graph_builder.add_conditional_edges(
            START, self._wrap_routing_function(decide_route), edge_map,
        )

        self._graph = graph_builder.compile()
        logger.info(f"Session workflow compiled: {len(NODE_NAMES)} nodes")
        return self._graph

    @property
    def graph(self) -> Optional[CompiledStateGraph]:
        return self._graph

    @property
    def registry(self) -> NodeRegistry:
        return self._registry

    @property
    def error_handler(self) -> NodeErrorHandler:
        return self._error_handler

    # ========================================================================
    # Execution
    # ========================================================================

    async def execute(
        self,
        state: SessionState,
        workflow_logger: Optional[WorkflowLogger] = None,
    ) -> SessionState:
        """Advance the session by exactly one tick.

        Raises:
            StateValidationError: The input state is structurally invalid.
            SessionBusyError: A tick is already running for this session.
            ExecutionError: Routing, patch merge or graph execution failed.
        """
        session_id = getattr(state, "session_id", None)

        # A refused tick must not touch the running tick's log
        with self._session_slot(session_id):
            started = time.perf_counter()
            if workflow_logger:
                workflow_logger.log_workflow_start(state)

            try:
                validate_session_state(state)
            except StateValidationError as e:
                if workflow_logger:
                    workflow_logger.log_workflow_error(e, {"phase": "validation"})
                raise

            if self._graph is None:
                self.compile()

            try:
                result = await self._graph.ainvoke(
                    to_graph_state(state),
                    config={"configurable": {_LOGGER_KEY: workflow_logger}},
                )
                new_state = from_graph_state(result)
            except WorkflowError as e:
                if workflow_logger:
                    workflow_logger.log_workflow_error(e, {"session_id": session_id})
                raise
            except Exception as e:
                logger.exception(f"[{session_id}] Workflow tick failed: {e}")
                if workflow_logger:
                    workflow_logger.log_workflow_error(e, {"session_id": session_id})
                raise ExecutionError(
                    f"Workflow execution failed: {e}", session_id=session_id,
                ) from e

            if workflow_logger:
                workflow_logger.log_workflow_end(new_state, started_at=started)
        return new_state

    async def run_until_idle(
        self,
        state: SessionState,
        max_ticks: int = 5,
        workflow_logger: Optional[WorkflowLogger] = None,
    ) -> SessionState:
        """Tick until the router ends, nothing changes, or ``max_ticks`` is hit.

        Each tick is fed the previous tick's result.
        """
        for _ in range(max_ticks):
            if route_session(state) == DONE:
                break
            next_state = await self.execute(state, workflow_logger)
            if _content_equal(state, next_state):
                return next_state
            state = next_state
        return state

    def is_busy(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._in_flight

    @contextmanager
    def _session_slot(self, session_id: str) -> Iterator[None]:
        with self._lock:
            if session_id in self._in_flight:
                raise SessionBusyError(session_id)
            self._in_flight.add(session_id)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(session_id)

    # ========================================================================
    # Internal helpers
    # ========================================================================

    def _make_node_function(self, base_node: BaseNode):
        """Create a LangGraph-compatible async node function.

        Wraps ``BaseNode.execute`` with the execution context, enforces
        the node's declared writes, stamps ``updated_at`` and records
        enter/exit/error and state-update events.
        """
        capabilities = self._capabilities
        error_handler = self._error_handler
        node_name = base_node.node_type
        _summarize = self._summarize_changes

        async def _node_fn(state: Dict[str, Any], config: RunnableConfig) -> Dict[str, Any]:
            workflow_logger = _workflow_logger(config)
            session_state = from_graph_state(state)
            ctx = ExecutionContext(
                session_id=session_state.session_id,
                capabilities=capabilities,
                workflow_logger=workflow_logger,
                error_handler=error_handler,
            )

            # ── Node enter ──
            if workflow_logger:
                workflow_logger.log_node_enter(node_name, session_state)

            start = time.time()
            try:
                patch = dict(await base_node.execute(session_state, ctx))
            except Exception as e:
                duration_ms = int((time.time() - start) * 1000)
                logger.error(
                    f"[{ctx.session_id}] Node '{node_name}' failed after {duration_ms}ms: {e}"
                )
                if workflow_logger:
                    workflow_logger.log_node_error(node_name, e, session_state)
                raise
            duration_ms = int((time.time() - start) * 1000)

            undeclared = base_node.state_usage.undeclared_writes(patch)
            if undeclared:
                error = PatchViolationError(node_name, undeclared)
                if workflow_logger:
                    workflow_logger.log_node_error(node_name, error, session_state)
                raise error

            patch["updated_at"] = utcnow()

            # ── Node exit ──
            if workflow_logger:
                merged = session_state.model_copy(update=patch)
                workflow_logger.log_node_exit(node_name, merged, patch, duration_ms)
                workflow_logger.log_state_update(patch, node_name)

            logger.debug(f"[{ctx.session_id}] {node_name} done in {duration_ms}ms: {_summarize(patch)}")
            return patch

        _node_fn.__name__ = f"node_{node_name}"
        _node_fn.__qualname__ = _node_fn.__name__
        return _node_fn

    def _wrap_routing_function(self, routing_fn: Callable[[Any], RouteDecision]) -> Callable:
        """Wrap the router to record the condition check and chosen edge."""

        def _logged_routing(state: Dict[str, Any], config: RunnableConfig) -> str:
            decision = routing_fn(from_graph_state(state))
            target = decision.target
            workflow_logger = _workflow_logger(config)
            if workflow_logger:
                workflow_logger.log_condition_check(
                    "route_session",
                    target != DONE,
                    {"rule": decision.condition, "target": target},
                )
                workflow_logger.log_edge_transition(START, target, decision.condition)
            return target

        return _logged_routing

    @staticmethod
    def _summarize_changes(patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Produce a minimal summary of state changes from a node patch."""
        if not patch:
            return None
        summary: Dict[str, Any] = {}
        for key, value in patch.items():
            if isinstance(value, str):
                summary[key] = f"{len(value)} chars" if len(value) > 50 else value
            elif isinstance(value, list):
                summary[key] = f"{len(value)} items"
            elif isinstance(value, dict):
                summary[key] = f"{{...}} ({len(value)} keys)"
            else:
                summary[key] = value
        return summary


def _content_equal(before: SessionState, after: SessionState) -> bool:
    """Equal ignoring ``updated_at``."""
    exclude = {"updated_at"}
    return before.model_dump(exclude=exclude) == after.model_dump(exclude=exclude)
