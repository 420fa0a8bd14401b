"""
OpenAI-backed capabilities: ``ChatOpenAI`` for generation and the
Whisper endpoint for transcription.
"""

from __future__ import annotations

from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from langchain_openai import ChatOpenAI
from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)

from flowgenius.capabilities.base import CapabilityProvider
from flowgenius.capabilities.chat_model import (
    CachedModelFactory,
    ChatModelSummarizer,
    ChatModelTurnGenerator,
)
from flowgenius.workflow.errors import CapabilityError
from flowgenius.workflow.workflow_state import Stage

if TYPE_CHECKING:
    from flowgenius.config.workflow_config import WorkflowConfig

logger = getLogger(__name__)

# Worth another attempt at the node level
OPENAI_TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)


class WhisperTranscriber:
    """Speech-to-text through ``audio.transcriptions``."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "whisper-1",
        language: Optional[str] = None,
    ) -> None:
        self._client = client
        self._model = model
        self._language = language

    async def __call__(self, file_path: str, mime_type: str) -> str:
        path = Path(file_path)
        if not path.is_file():
            raise CapabilityError(f"Audio file not found: {file_path}")

        logger.info(f"🎙️ Transcribing {path.name} ({mime_type}) with {self._model}")
        kwargs = {"model": self._model, "response_format": "text"}
        if self._language:
            kwargs["language"] = self._language

        try:
            with path.open("rb") as audio:
                result = await self._client.audio.transcriptions.create(
                    file=(path.name, audio, mime_type),
                    **kwargs,
                )
        except OPENAI_TRANSIENT_ERRORS as e:
            raise CapabilityError(f"Transcription failed: {e}", transient=True) from e
        # response_format="text" returns a bare string
        text = result if isinstance(result, str) else getattr(result, "text", "")
        return text.strip()


def build_openai_capabilities(config: "WorkflowConfig") -> CapabilityProvider:
    api_key = config.openai_api_key or None

    def _build(model_name: str) -> ChatOpenAI:
        return ChatOpenAI(model=model_name, temperature=0.3, api_key=api_key)

    factory = CachedModelFactory(_build)
    turn_generator = ChatModelTurnGenerator(factory, transient_errors=OPENAI_TRANSIENT_ERRORS)

    provider = CapabilityProvider(
        turn_generators={stage: turn_generator for stage in Stage},
        summarizer=ChatModelSummarizer(factory, transient_errors=OPENAI_TRANSIENT_ERRORS),
        transcriber=WhisperTranscriber(
            AsyncOpenAI(api_key=api_key),
            model=config.transcription_model,
        ),
    )
    logger.info(f"✅ OpenAI capabilities ready: {provider!r}")
    return provider
