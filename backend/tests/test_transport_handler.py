"""Tests for the result-returning request handler."""

import asyncio

from flowgenius.transport.handler import WorkflowRequestHandler
from flowgenius.transport.models import WorkflowHealth, WorkflowMetrics, WorkflowSchema
from flowgenius.workflow.nodes import BaseNode, build_node_registry
from flowgenius.workflow.state_validator import ValidationReport
from flowgenius.workflow.workflow_executor import WorkflowExecutor
from flowgenius.workflow.workflow_state import AVAILABLE_MODELS, NodeStateUsage, SessionState


class ExplodingNode(BaseNode):
    node_type = "processUserTurn"
    state_usage = NodeStateUsage(writes=["messages"])

    async def execute(self, state, context):
        raise RuntimeError("unexpected")


def _blocking_generator():
    started = asyncio.Event()
    release = asyncio.Event()

    async def generate(messages, prompt, model):
        started.set()
        await release.wait()
        return "done"

    return generate, started, release


class TestExecute:
    async def test_execute_runs_tick_and_saves(self, handler, registry):
        created = await handler.create_session("idea-1", "u-1")
        result = await handler.execute(created.data)

        assert result.success
        assert isinstance(result.data, SessionState)
        assert len(result.data.messages) == 1
        assert result.duration is not None
        assert registry.get_session("idea-1") is result.data

    async def test_execute_accepts_json_payload(self, handler):
        created = await handler.create_session("idea-1")
        payload = created.data.model_dump(mode="json")
        result = await handler.execute(payload)
        assert result.success
        assert result.data.messages[0].role.value == "assistant"

    async def test_invalid_state_is_an_error_result(self, handler):
        await handler.create_session("idea-1")
        result = await handler.execute({"session_id": "idea-1", "stage": "launch"})
        assert not result.success
        assert result.error.startswith("Invalid state: ")
        assert "Invalid current_stage" in result.error

    async def test_unknown_session_is_an_error_result(self, handler, make_state):
        result = await handler.execute(make_state(session_id="ghost"))
        assert not result.success
        assert result.error == "Session not found: ghost"

    async def test_node_failure_still_succeeds_with_error_state(self, handler, turn_generator, make_state, registry):
        turn_generator.error = RuntimeError("model down")
        await handler.create_session("idea-1")
        result = await handler.execute(make_state([("user", "hi")]))
        assert result.success
        assert result.data.error == "model down"

    async def test_logger_is_reused_across_ticks(self, handler, make_state):
        await handler.create_session("idea-1")
        first = await handler.execute(make_state())
        await handler.execute(first.data)
        metrics = await handler.get_metrics("idea-1")
        assert metrics.data.node_executions["processUserTurn"].count == 2


    async def test_clear_during_tick_discards_result(self, handler, executor, registry, make_state):
        generate, started, release = _blocking_generator()
        executor._capabilities._turn_generators["brainstorm"] = generate
        await handler.create_session("idea-1")

        tick = asyncio.create_task(handler.execute(make_state([("user", "hi")])))
        await started.wait()
        assert (await handler.clear_session("idea-1")).success
        release.set()
        result = await tick

        assert not result.success
        assert result.error == "Session not found: idea-1"
        assert registry.get_session("idea-1") is None


class TestProcessingFlag:
    async def test_stored_session_is_processing_while_tick_runs(self, handler, executor, make_state):
        generate, started, release = _blocking_generator()
        executor._capabilities._turn_generators["brainstorm"] = generate
        await handler.create_session("idea-1")

        tick = asyncio.create_task(handler.execute(make_state([("user", "hi")])))
        await started.wait()
        assert (await handler.get_session("idea-1")).data.is_processing is True

        # A refused second tick leaves the running tick's flag alone
        refused = await handler.execute(make_state([("user", "hi")]))
        assert not refused.success
        assert "already has a tick in flight" in refused.error
        assert (await handler.get_session("idea-1")).data.is_processing is True

        release.set()
        assert (await tick).success
        assert (await handler.get_session("idea-1")).data.is_processing is False

    async def test_flag_is_cleared_when_tick_raises(self, capabilities, registry, make_state):
        nodes = build_node_registry()
        nodes.register(ExplodingNode())
        handler = WorkflowRequestHandler(registry, WorkflowExecutor(capabilities, nodes))
        await handler.create_session("idea-1")

        result = await handler.execute(make_state([("user", "hi")]))
        assert not result.success
        assert result.error.startswith("Workflow execution failed")
        assert registry.get_session("idea-1").is_processing is False


class TestSessionOperations:
    async def test_create_session(self, handler):
        result = await handler.create_session("idea-1")
        assert result.success
        assert result.data.session_id == "idea-1"
        assert handler.get_workflow_logger("idea-1") is not None

    async def test_get_session(self, handler):
        await handler.create_session("idea-1")
        assert (await handler.get_session("idea-1")).data.session_id == "idea-1"
        missing = await handler.get_session("nope")
        assert not missing.success
        assert missing.error == "Session not found: nope"

    async def test_validate_state(self, handler, make_state):
        ok = await handler.validate_state(make_state())
        assert ok.success
        assert ok.data == ValidationReport(is_valid=True, issues=[])

        bad = await handler.validate_state({"session_id": ""})
        assert bad.success
        assert not bad.data.is_valid
        assert len(bad.data.issues) == 4

    async def test_metrics_without_logger(self, handler):
        result = await handler.get_metrics("unknown")
        assert result.success
        assert result.data is None

    async def test_metrics_after_tick(self, handler, make_state):
        await handler.create_session("idea-1")
        await handler.execute(make_state())
        result = await handler.get_metrics("idea-1")
        assert isinstance(result.data, WorkflowMetrics)
        assert result.data.workflow_id == "idea-1"
        assert result.data.state_update_count == 1
        assert result.data.error_count == 0

    async def test_clear_session(self, handler, registry):
        await handler.create_session("idea-1")
        result = await handler.clear_session("idea-1")
        assert result.success
        assert registry.get_session("idea-1") is None
        assert handler.get_workflow_logger("idea-1") is None
        assert (await handler.get_metrics("idea-1")).data is None

    async def test_clear_unknown_session_succeeds(self, handler):
        assert (await handler.clear_session("nope")).success


class TestHealthAndSchema:
    async def test_metrics_include_node_health(self, handler, make_state, turn_generator):
        turn_generator.error = RuntimeError("model down")
        await handler.create_session("idea-1")
        await handler.execute(make_state([("user", "hi")]))

        health = (await handler.get_metrics("idea-1")).data.health
        assert health.overall == "degraded"
        by_name = {n.node_name: n for n in health.nodes}
        assert by_name["processUserTurn"].failure_count == 1
        assert by_name["generateSummary"].failure_count == 0

    async def test_get_and_reset_health(self, handler, make_state, turn_generator):
        turn_generator.error = RuntimeError("model down")
        await handler.create_session("idea-1")
        await handler.execute(make_state([("user", "hi")]))

        result = await handler.get_health()
        assert isinstance(result.data, WorkflowHealth)
        assert result.data.overall == "degraded"

        reset = await handler.reset_node_health("processUserTurn")
        assert reset.success
        assert reset.data.overall == "healthy"

        unknown = await handler.reset_node_health("nope")
        assert not unknown.success
        assert unknown.error == "Unknown node: nope"

    async def test_schema(self, handler):
        result = await handler.get_schema()
        assert isinstance(result.data, WorkflowSchema)

        nodes = {n["node_type"]: n for n in result.data.nodes}
        assert set(nodes) == {"processUserTurn", "processVoiceInput", "generateSummary"}
        assert nodes["generateSummary"]["category"] == "summary"
        assert "messages" in nodes["processUserTurn"]["state_usage"]["reads"]
        assert "voice_audio_data" in nodes["processVoiceInput"]["state_usage"]["reads"]

        field_names = [f["name"] for f in result.data.state_fields]
        assert "messages" in field_names
        assert "session_id" in field_names
        assert result.data.available_models == AVAILABLE_MODELS
