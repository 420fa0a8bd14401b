"""
Node Error Handler — retry, circuit breaking and health for capability calls.

Nodes send every capability call through ``ExecutionContext.call_capability``.
With a handler attached a call goes:

    circuit open       -> fail fast with CapabilityError
    attempt succeeds   -> record success, return
    transient failure  -> wait (exponential backoff), try again
    other / exhausted  -> record failure, re-raise

The node still folds the final exception into the session ``error``
field; the handler only decides how often to try and when to stop trying.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from dataclasses import dataclass, replace
from enum import Enum
from logging import getLogger
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Literal, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, Field

from flowgenius.workflow.errors import CapabilityError
from flowgenius.workflow.workflow_state import utcnow

if TYPE_CHECKING:
    from flowgenius.config.workflow_config import WorkflowConfig

logger = getLogger(__name__)

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


def is_transient(error: BaseException) -> bool:
    """Whether a failed call is worth another attempt."""
    if isinstance(error, CapabilityError):
        return error.transient
    return isinstance(error, TRANSIENT_ERRORS)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = 2.0

    def delay_ms(self, attempt: int) -> int:
        """Wait after the ``attempt``-th failure (1-based)."""
        delay = self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1)
        return int(min(delay, self.max_delay_ms))


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    reset_timeout_ms: int = 60000


class NodeHealth(BaseModel):
    node_name: str
    success_count: int = 0
    failure_count: int = Field(default=0, description="Consecutive failed calls")
    last_failure_time: Optional[datetime] = None
    circuit_state: CircuitState = CircuitState.CLOSED
    average_execution_ms: float = 0.0


class WorkflowHealth(BaseModel):
    overall: Literal["healthy", "degraded", "unhealthy"]
    nodes: List[NodeHealth] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


def _elapsed_ms(since: float) -> float:
    return (time.perf_counter() - since) * 1000


class NodeErrorHandler:
    """Per-node retry policy, circuit breaker and health tracking.

    One handler is shared by every session run through an executor, so
    health reflects the capability backends rather than one conversation.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breaker: Optional[CircuitBreakerConfig] = None,
        node_policies: Optional[Mapping[str, RetryPolicy]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._retry_policy = retry_policy or RetryPolicy()
        self._breaker = circuit_breaker or CircuitBreakerConfig()
        self._node_policies: Dict[str, RetryPolicy] = dict(node_policies or {})
        self._clock = clock
        self._health: Dict[str, NodeHealth] = {}
        self._opened_at: Dict[str, float] = {}

    @classmethod
    def from_config(cls, config: "WorkflowConfig") -> "NodeErrorHandler":
        policy = RetryPolicy(
            max_attempts=config.node_retry_attempts,
            initial_delay_ms=config.node_retry_delay_ms,
            max_delay_ms=config.node_retry_max_delay_ms,
        )
        return cls(
            retry_policy=policy,
            circuit_breaker=CircuitBreakerConfig(
                failure_threshold=config.circuit_failure_threshold,
                reset_timeout_ms=config.circuit_reset_ms,
            ),
            # Summaries are long generations; give them two extra tries
            node_policies={"generateSummary": replace(policy, max_attempts=policy.max_attempts + 2)},
        )

    def policy_for(self, node_name: str) -> RetryPolicy:
        return self._node_policies.get(node_name, self._retry_policy)

    def track_nodes(self, node_names: Iterable[str]) -> None:
        for name in node_names:
            self._health_for(name)

    # ========================================================================
    # Guarded call
    # ========================================================================

    async def call(self, node_name: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Await ``fn(*args)`` under the node's retry policy and breaker.

        Raises:
            CapabilityError: The node's circuit is open.
            Exception: The last failure, once retries are exhausted or
                the failure is not transient.
        """
        health = self._health_for(node_name)
        self._refresh_circuit(health)
        if health.circuit_state == CircuitState.OPEN:
            logger.warning(f"⛔ Circuit breaker OPEN for {node_name}, failing fast")
            raise CapabilityError(
                f"Service temporarily unavailable. The {node_name} component is "
                f"experiencing issues. Please try again later."
            )

        policy = self.policy_for(node_name)
        # Half-open admits one trial call
        attempts = 1 if health.circuit_state == CircuitState.HALF_OPEN else max(1, policy.max_attempts)
        start = time.perf_counter()

        for attempt in range(1, attempts + 1):
            try:
                result = await fn(*args)
            except Exception as e:
                if attempt < attempts and is_transient(e):
                    delay = policy.delay_ms(attempt)
                    logger.warning(
                        f"🔄 {node_name}: attempt {attempt}/{attempts} failed ({e}), "
                        f"retrying in {delay}ms"
                    )
                    await asyncio.sleep(delay / 1000)
                    continue
                self._record_failure(health)
                raise
            self._record_success(health, _elapsed_ms(start))
            if attempt > 1:
                logger.info(f"✅ {node_name}: succeeded on attempt {attempt}")
            return result

    # ========================================================================
    # Health
    # ========================================================================

    def get_node_health(self, node_name: str) -> NodeHealth:
        health = self._health_for(node_name)
        self._refresh_circuit(health)
        return health.model_copy()

    def get_workflow_health(self) -> WorkflowHealth:
        nodes = [self.get_node_health(name) for name in self._health]
        open_circuits = [n for n in nodes if n.circuit_state != CircuitState.CLOSED]
        failing = [n for n in nodes if n.failure_count > 0]

        overall = "healthy"
        recommendations: List[str] = []
        if open_circuits:
            overall = "unhealthy"
            recommendations.append(f"{len(open_circuits)} nodes have open circuit breakers")
        elif failing:
            overall = "degraded"
            recommendations.append(f"{len(failing)} nodes are experiencing failures")
        for node in open_circuits:
            recommendations.append(
                f"{node.node_name}: Circuit breaker open. "
                f"Will retry in {self._breaker.reset_timeout_ms}ms"
            )
        return WorkflowHealth(overall=overall, nodes=nodes, recommendations=recommendations)

    def reset_node_health(self, node_name: Optional[str] = None) -> None:
        """Reset one node, or every tracked node when ``node_name`` is None."""
        if node_name and node_name not in self._health:
            raise ValueError(f"Unknown node: {node_name}")
        names = [node_name] if node_name else list(self._health)
        for name in names:
            self._health[name] = NodeHealth(node_name=name)
            self._opened_at.pop(name, None)
        logger.info(f"🔌 Node health reset: {', '.join(names) or '-'}")

    # ========================================================================
    # Internals
    # ========================================================================

    def _health_for(self, node_name: str) -> NodeHealth:
        health = self._health.get(node_name)
        if health is None:
            health = self._health[node_name] = NodeHealth(node_name=node_name)
        return health

    def _refresh_circuit(self, health: NodeHealth) -> None:
        opened = self._opened_at.get(health.node_name)
        if health.circuit_state != CircuitState.OPEN or opened is None:
            return
        if (self._clock() - opened) * 1000 >= self._breaker.reset_timeout_ms:
            logger.info(f"🔌 Circuit breaker HALF_OPEN for {health.node_name}")
            health.circuit_state = CircuitState.HALF_OPEN

    def _record_success(self, health: NodeHealth, duration_ms: float) -> None:
        health.success_count += 1
        health.failure_count = 0
        health.average_execution_ms += (duration_ms - health.average_execution_ms) / health.success_count
        if health.circuit_state != CircuitState.CLOSED:
            logger.info(f"✅ Closing circuit breaker for {health.node_name}")
            health.circuit_state = CircuitState.CLOSED
            self._opened_at.pop(health.node_name, None)

    def _record_failure(self, health: NodeHealth) -> None:
        health.failure_count += 1
        health.last_failure_time = utcnow()
        if (
            health.circuit_state == CircuitState.HALF_OPEN
            or health.failure_count >= self._breaker.failure_threshold
        ):
            if health.circuit_state != CircuitState.OPEN:
                logger.warning(
                    f"⚡ Opening circuit breaker for {health.node_name} "
                    f"after {health.failure_count} failures"
                )
            health.circuit_state = CircuitState.OPEN
            self._opened_at[health.node_name] = self._clock()
