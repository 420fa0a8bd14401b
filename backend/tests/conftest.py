"""Shared test fixtures."""

from typing import List, Optional

import pytest

from flowgenius.capabilities import CapabilityProvider
from flowgenius.logging import create_workflow_logger
from flowgenius.transport.handler import WorkflowRequestHandler
from flowgenius.workflow.nodes import ExecutionContext
from flowgenius.workflow.session_registry import SessionRegistry
from flowgenius.workflow.workflow_executor import WorkflowExecutor
from flowgenius.workflow.workflow_state import (
    Message,
    MessageRole,
    Stage,
    make_initial_session_state,
)


class FakeTurnGenerator:
    def __init__(self, reply: str = "What problem does it solve? Georgia is great", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[tuple] = []

    async def __call__(self, messages, prompt, model):
        self.calls.append((list(messages), prompt, model))
        if self.error:
            raise self.error
        return self.reply


class FakeSummarizer:
    def __init__(self, summary: str = "# Project Name\nIdeaBox\n\nIreland is great", error: Optional[Exception] = None):
        self.summary = summary
        self.error = error
        self.calls: List[tuple] = []

    async def __call__(self, messages, prompt, model):
        self.calls.append((list(messages), prompt, model))
        if self.error:
            raise self.error
        return self.summary


class FakeTranscriber:
    def __init__(self, text: str = "I want an app for tracking houseplants", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[tuple] = []

    async def __call__(self, file_path, mime_type):
        self.calls.append((file_path, mime_type))
        if self.error:
            raise self.error
        return self.text


@pytest.fixture
def turn_generator():
    return FakeTurnGenerator()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def capabilities(turn_generator, summarizer, transcriber):
    return CapabilityProvider(
        turn_generators={stage: turn_generator for stage in Stage},
        summarizer=summarizer,
        transcriber=transcriber,
    )


@pytest.fixture
def context(capabilities):
    return ExecutionContext(session_id="idea-1", capabilities=capabilities)


@pytest.fixture
def executor(capabilities):
    return WorkflowExecutor(capabilities)


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def handler(registry, executor):
    return WorkflowRequestHandler(registry, executor)


@pytest.fixture
def workflow_logger():
    return create_workflow_logger("idea-1")


@pytest.fixture
def make_state():
    """Build a session state from ``(role, content)`` message tuples."""

    def _make(messages=(), session_id="idea-1", **overrides):
        state = make_initial_session_state(session_id)
        stage = overrides.get("stage", state.stage)
        msgs = [
            Message(role=MessageRole(role), content=content, stage_at_creation=stage)
            for role, content in messages
        ]
        return state.model_copy(update={"messages": msgs, **overrides})

    return _make
