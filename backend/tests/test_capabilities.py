"""Tests for capability lookup and the chat-model / Whisper adapters."""

from types import SimpleNamespace

import httpx
import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage
from openai import APITimeoutError

from flowgenius.capabilities import (
    CachedModelFactory,
    CapabilityProvider,
    ChatModelSummarizer,
    ChatModelTurnGenerator,
    format_transcript,
    to_langchain_messages,
)
from flowgenius.capabilities.openai_provider import WhisperTranscriber
from flowgenius.workflow.errors import CapabilityError
from flowgenius.workflow.workflow_state import Message, MessageRole, Stage


def _messages():
    return [
        Message(role=MessageRole.USER, content="A plant tracker", stage_at_creation=Stage.BRAINSTORM),
        Message(role=MessageRole.ASSISTANT, content="Who is it for?", stage_at_creation=Stage.BRAINSTORM),
    ]


class RecordingFactory:
    def __init__(self, *responses):
        self.model = FakeListChatModel(responses=list(responses))
        self.requested = []

    def __call__(self, model_name):
        self.requested.append(model_name)
        return self.model


class TestCapabilityProvider:
    async def test_lookup_by_stage(self, turn_generator):
        provider = CapabilityProvider(turn_generators={Stage.BRAINSTORM: turn_generator})
        assert provider.turn_generator_for("brainstorm") is turn_generator
        assert provider.turn_generator_for(Stage.BRAINSTORM) is turn_generator
        assert provider.stages == ["brainstorm"]

    def test_missing_capabilities(self):
        provider = CapabilityProvider()
        with pytest.raises(CapabilityError, match="No turn generator configured for stage 'prd'"):
            provider.turn_generator_for(Stage.PRD)
        with pytest.raises(CapabilityError, match="No summarizer configured"):
            provider.summarizer
        with pytest.raises(CapabilityError, match="No transcriber configured"):
            provider.transcriber

    def test_unknown_stage_key_is_rejected(self, turn_generator):
        with pytest.raises(ValueError):
            CapabilityProvider(turn_generators={"launch": turn_generator})


class TestMessageConversion:
    def test_to_langchain_messages(self):
        converted = to_langchain_messages(_messages())
        assert isinstance(converted[0], HumanMessage)
        assert isinstance(converted[1], AIMessage)
        assert converted[1].content == "Who is it for?"

    def test_format_transcript(self):
        assert format_transcript(_messages()) == "user: A plant tracker\n\nassistant: Who is it for?"


class DroppingModel:
    async def ainvoke(self, messages):
        raise ConnectionError("reset by peer")


class TestChatModelAdapters:
    async def test_turn_generator(self):
        factory = RecordingFactory("  What problem does it solve?  ")
        generate = ChatModelTurnGenerator(factory)
        reply = await generate(_messages(), "Be brief", "gpt-4o")
        assert reply == "What problem does it solve?"
        assert factory.requested == ["gpt-4o"]

    async def test_turn_generator_rejects_empty_reply(self):
        generate = ChatModelTurnGenerator(RecordingFactory("   "))
        with pytest.raises(CapabilityError, match="empty reply"):
            await generate(_messages(), "", "gpt-4o")

    async def test_summarizer(self):
        factory = RecordingFactory("## Overview\nPlants\n\nIreland is great")
        summarize = ChatModelSummarizer(factory)
        summary = await summarize(_messages(), "", "gpt-4o-mini")
        assert summary.endswith("Ireland is great")
        assert factory.requested == ["gpt-4o-mini"]

    async def test_summarizer_rejects_empty_summary(self):
        summarize = ChatModelSummarizer(RecordingFactory(""))
        with pytest.raises(CapabilityError, match="empty summary"):
            await summarize(_messages(), "", "gpt-4o")

    async def test_transient_model_error_is_marked(self):
        generate = ChatModelTurnGenerator(lambda name: DroppingModel(), transient_errors=(ConnectionError,))
        with pytest.raises(CapabilityError, match="call failed: reset by peer") as exc:
            await generate(_messages(), "", "gpt-4o")
        assert exc.value.transient is True
        assert isinstance(exc.value.__cause__, ConnectionError)

    async def test_unlisted_model_error_passes_through(self):
        summarize = ChatModelSummarizer(lambda name: DroppingModel())
        with pytest.raises(ConnectionError):
            await summarize(_messages(), "", "gpt-4o")

    def test_cached_factory_builds_once_per_model(self):
        built = []

        def build(name):
            built.append(name)
            return FakeListChatModel(responses=["ok"])

        factory = CachedModelFactory(build)
        assert factory("a") is factory("a")
        factory("b")
        assert built == ["a", "b"]


class FakeTranscriptions:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def create(self, **kwargs):
        name, fh, mime = kwargs["file"]
        self.calls.append({**kwargs, "file": (name, fh.read(), mime)})
        return self.result


class TestWhisperTranscriber:
    async def test_transcribes_file(self, tmp_path):
        audio = tmp_path / "note.webm"
        audio.write_bytes(b"\x1a\x45")
        transcriptions = FakeTranscriptions(" A plant tracker \n")
        client = SimpleNamespace(audio=SimpleNamespace(transcriptions=transcriptions))

        text = await WhisperTranscriber(client, language="en")(str(audio), "audio/webm")
        assert text == "A plant tracker"
        call = transcriptions.calls[0]
        assert call["file"] == ("note.webm", b"\x1a\x45", "audio/webm")
        assert call["model"] == "whisper-1"
        assert call["response_format"] == "text"
        assert call["language"] == "en"

    async def test_missing_file(self, tmp_path):
        client = SimpleNamespace(audio=SimpleNamespace(transcriptions=FakeTranscriptions("x")))
        with pytest.raises(CapabilityError, match="Audio file not found"):
            await WhisperTranscriber(client)(str(tmp_path / "gone.webm"), "audio/webm")

    async def test_timeout_is_transient(self, tmp_path):
        audio = tmp_path / "note.webm"
        audio.write_bytes(b"\x1a\x45")

        class TimingOut:
            async def create(self, **kwargs):
                raise APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions"))

        client = SimpleNamespace(audio=SimpleNamespace(transcriptions=TimingOut()))
        with pytest.raises(CapabilityError, match="Transcription failed") as exc:
            await WhisperTranscriber(client)(str(audio), "audio/webm")
        assert exc.value.transient is True
