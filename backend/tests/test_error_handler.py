"""Tests for node retry, circuit breaking and health tracking."""

import pytest

from flowgenius.config import WorkflowConfig
from flowgenius.workflow import error_handler as error_handler_module
from flowgenius.workflow.error_handler import (
    CircuitBreakerConfig,
    CircuitState,
    NodeErrorHandler,
    RetryPolicy,
    is_transient,
)
from flowgenius.workflow.errors import CapabilityError
from flowgenius.workflow.workflow_executor import WorkflowExecutor


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class Flaky:
    """Fails with each queued error in turn, then returns ``result``."""

    def __init__(self, *errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self, *args):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


@pytest.fixture
def sleeps(monkeypatch):
    waited = []

    async def fake_sleep(seconds):
        waited.append(seconds)

    monkeypatch.setattr(error_handler_module.asyncio, "sleep", fake_sleep)
    return waited


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def node_errors(clock):
    return NodeErrorHandler(
        retry_policy=RetryPolicy(max_attempts=3, initial_delay_ms=100, max_delay_ms=1000),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=2, reset_timeout_ms=5000),
        clock=clock,
    )


class TestTransientClassification:
    def test_capability_error_flag(self):
        assert is_transient(CapabilityError("rate limited", transient=True))
        assert not is_transient(CapabilityError("No summarizer configured"))

    def test_builtin_network_errors(self):
        assert is_transient(ConnectionError("reset"))
        assert is_transient(TimeoutError("slow"))
        assert not is_transient(RuntimeError("bug"))
        assert not is_transient(ValueError("empty"))


class TestRetry:
    async def test_transient_error_is_retried_with_backoff(self, node_errors, sleeps):
        fn = Flaky(ConnectionError("reset"), CapabilityError("429", transient=True))
        assert await node_errors.call("processUserTurn", fn, "arg") == "ok"
        assert fn.calls == 3
        assert sleeps == [0.1, 0.2]

        health = node_errors.get_node_health("processUserTurn")
        assert health.success_count == 1
        assert health.failure_count == 0

    async def test_permanent_error_is_not_retried(self, node_errors, sleeps):
        fn = Flaky(RuntimeError("bad prompt"))
        with pytest.raises(RuntimeError, match="bad prompt"):
            await node_errors.call("processUserTurn", fn)
        assert fn.calls == 1
        assert sleeps == []
        assert node_errors.get_node_health("processUserTurn").failure_count == 1

    async def test_exhausted_retries_raise_last_error(self, node_errors, sleeps):
        fn = Flaky(ConnectionError("one"), ConnectionError("two"), ConnectionError("three"))
        with pytest.raises(ConnectionError, match="three"):
            await node_errors.call("processUserTurn", fn)
        assert fn.calls == 3
        assert len(sleeps) == 2
        # One failed call, however many attempts it took
        assert node_errors.get_node_health("processUserTurn").failure_count == 1

    def test_delay_is_capped(self):
        policy = RetryPolicy(initial_delay_ms=1000, max_delay_ms=3000, backoff_multiplier=2)
        assert [policy.delay_ms(n) for n in (1, 2, 3, 4)] == [1000, 2000, 3000, 3000]

    def test_summary_node_gets_extra_attempts_from_config(self):
        handler = NodeErrorHandler.from_config(WorkflowConfig(node_retry_attempts=3))
        assert handler.policy_for("generateSummary").max_attempts == 5
        assert handler.policy_for("processUserTurn").max_attempts == 3


class TestCircuitBreaker:
    async def _fail(self, node_errors, node="generateSummary"):
        with pytest.raises(RuntimeError):
            await node_errors.call(node, Flaky(RuntimeError("down")))

    async def test_opens_after_threshold_and_fails_fast(self, node_errors):
        await self._fail(node_errors)
        assert node_errors.get_node_health("generateSummary").circuit_state == CircuitState.CLOSED
        await self._fail(node_errors)
        assert node_errors.get_node_health("generateSummary").circuit_state == CircuitState.OPEN

        fn = Flaky()
        with pytest.raises(CapabilityError, match="The generateSummary component is experiencing issues"):
            await node_errors.call("generateSummary", fn)
        assert fn.calls == 0

        # Other nodes keep working
        assert await node_errors.call("processUserTurn", Flaky()) == "ok"

    async def test_half_open_success_closes(self, node_errors, clock):
        await self._fail(node_errors)
        await self._fail(node_errors)
        clock.now += 5
        assert node_errors.get_node_health("generateSummary").circuit_state == CircuitState.HALF_OPEN

        assert await node_errors.call("generateSummary", Flaky()) == "ok"
        health = node_errors.get_node_health("generateSummary")
        assert health.circuit_state == CircuitState.CLOSED
        assert health.failure_count == 0

    async def test_half_open_failure_reopens_without_retry(self, node_errors, clock, sleeps):
        await self._fail(node_errors)
        await self._fail(node_errors)
        clock.now += 5

        fn = Flaky(ConnectionError("still down"))
        with pytest.raises(ConnectionError):
            await node_errors.call("generateSummary", fn)
        assert fn.calls == 1
        assert sleeps == []
        assert node_errors.get_node_health("generateSummary").circuit_state == CircuitState.OPEN


class TestHealth:
    async def test_overall_status(self, node_errors):
        node_errors.track_nodes(["processUserTurn", "generateSummary"])
        assert node_errors.get_workflow_health().overall == "healthy"

        with pytest.raises(RuntimeError):
            await node_errors.call("processUserTurn", Flaky(RuntimeError("x")))
        degraded = node_errors.get_workflow_health()
        assert degraded.overall == "degraded"
        assert degraded.recommendations == ["1 nodes are experiencing failures"]

        with pytest.raises(RuntimeError):
            await node_errors.call("processUserTurn", Flaky(RuntimeError("x")))
        unhealthy = node_errors.get_workflow_health()
        assert unhealthy.overall == "unhealthy"
        assert unhealthy.recommendations == [
            "1 nodes have open circuit breakers",
            "processUserTurn: Circuit breaker open. Will retry in 5000ms",
        ]
        assert [n.node_name for n in unhealthy.nodes] == ["processUserTurn", "generateSummary"]

    async def test_reset_one_node(self, node_errors):
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await node_errors.call("processUserTurn", Flaky(RuntimeError("x")))
        node_errors.reset_node_health("processUserTurn")

        health = node_errors.get_node_health("processUserTurn")
        assert health.circuit_state == CircuitState.CLOSED
        assert health.failure_count == 0
        assert health.last_failure_time is None
        assert await node_errors.call("processUserTurn", Flaky()) == "ok"

    def test_reset_unknown_node_is_rejected(self, node_errors):
        with pytest.raises(ValueError, match="Unknown node: nope"):
            node_errors.reset_node_health("nope")

    async def test_average_execution_time(self, node_errors):
        await node_errors.call("processUserTurn", Flaky())
        await node_errors.call("processUserTurn", Flaky())
        health = node_errors.get_node_health("processUserTurn")
        assert health.success_count == 2
        assert health.average_execution_ms >= 0


class TestExecutorIntegration:
    async def test_transient_turn_failure_is_retried_within_tick(self, capabilities, make_state, sleeps):
        executor = WorkflowExecutor(capabilities)
        replies = Flaky(ConnectionError("reset"), result="Who would use it?")
        capabilities._turn_generators["brainstorm"] = replies

        result = await executor.execute(make_state([("user", "An app for plants")]))
        assert result.error is None
        assert result.messages[-1].content == "Who would use it?"
        assert replies.calls == 2
        assert len(sleeps) == 1

    async def test_open_circuit_becomes_session_error(self, capabilities, turn_generator, make_state):
        executor = WorkflowExecutor(
            capabilities,
            error_handler=NodeErrorHandler(circuit_breaker=CircuitBreakerConfig(failure_threshold=1)),
        )
        turn_generator.error = RuntimeError("model down")
        first = await executor.execute(make_state([("user", "hi")]))
        assert first.error == "model down"

        turn_generator.error = None
        second = await executor.execute(make_state([("user", "hi")]))
        assert second.error.startswith("Service temporarily unavailable. The processUserTurn component")
        assert len(turn_generator.calls) == 1

    def test_executor_tracks_every_routed_node(self, executor):
        names = [n.node_name for n in executor.error_handler.get_workflow_health().nodes]
        assert sorted(names) == ["generateSummary", "processUserTurn", "processVoiceInput"]
