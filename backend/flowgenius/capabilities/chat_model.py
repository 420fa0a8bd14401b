"""
Chat-model capabilities — adapters over any LangChain chat model.

The model is resolved per call through a factory keyed by model name,
so a session can switch models per stage without rebuilding the
capability provider.
"""

from __future__ import annotations

from logging import getLogger
from typing import Callable, Dict, List, Optional, Tuple, Type

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from flowgenius.capabilities.prompts import (
    BRAINSTORM_SYSTEM_PROMPT,
    SUMMARY_REQUEST_TEMPLATE,
    SUMMARY_SYSTEM_PROMPT,
)
from flowgenius.workflow.errors import CapabilityError
from flowgenius.workflow.workflow_state import Message, MessageRole

logger = getLogger(__name__)

ChatModelFactory = Callable[[str], BaseChatModel]
ErrorTypes = Tuple[Type[BaseException], ...]


def to_langchain_messages(messages: List[Message]) -> List[BaseMessage]:
    """Convert session messages to LangChain message objects."""
    result: List[BaseMessage] = []
    for msg in messages:
        if msg.role == MessageRole.USER:
            result.append(HumanMessage(content=msg.content))
        else:
            result.append(AIMessage(content=msg.content))
    return result


def format_transcript(messages: List[Message]) -> str:
    return "\n\n".join(f"{m.role.value}: {m.content}" for m in messages)


def _response_text(response: BaseMessage) -> str:
    content = response.content
    if isinstance(content, list):
        # Multi-part content: keep the text blocks only
        content = "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return str(content).strip()


async def _ainvoke(
    model_factory: ChatModelFactory,
    model: str,
    messages: List[BaseMessage],
    transient_errors: ErrorTypes,
) -> BaseMessage:
    try:
        return await model_factory(model).ainvoke(messages)
    except transient_errors as e:
        raise CapabilityError(f"Model '{model}' call failed: {e}", transient=True) from e


class CachedModelFactory:
    """Memoizes one chat model instance per model name."""

    def __init__(self, build: ChatModelFactory) -> None:
        self._build = build
        self._models: Dict[str, BaseChatModel] = {}

    def __call__(self, model_name: str) -> BaseChatModel:
        if model_name not in self._models:
            logger.info(f"🤖 Creating chat model client: {model_name}")
            self._models[model_name] = self._build(model_name)
        return self._models[model_name]


class ChatModelTurnGenerator:
    """Generates the assistant reply for one chat turn."""

    def __init__(
        self,
        model_factory: ChatModelFactory,
        system_prompt: str = BRAINSTORM_SYSTEM_PROMPT,
        transient_errors: ErrorTypes = (),
    ) -> None:
        self._model_factory = model_factory
        self._system_prompt = system_prompt
        self._transient_errors = transient_errors

    async def __call__(self, messages: List[Message], prompt: str, model: str) -> str:
        system = self._system_prompt
        if prompt:
            system = f"{system}\n\nAdditional instructions from the user:\n{prompt}"

        lc_messages: List[BaseMessage] = [SystemMessage(content=system)]
        lc_messages.extend(to_langchain_messages(messages))

        response = await _ainvoke(self._model_factory, model, lc_messages, self._transient_errors)
        text = _response_text(response)
        if not text:
            raise CapabilityError(f"Model '{model}' returned an empty reply")
        return text


class ChatModelSummarizer:
    """Produces the structured brainstorm summary."""

    def __init__(
        self,
        model_factory: ChatModelFactory,
        system_prompt: str = SUMMARY_SYSTEM_PROMPT,
        request_template: Optional[str] = None,
        transient_errors: ErrorTypes = (),
    ) -> None:
        self._model_factory = model_factory
        self._transient_errors = transient_errors
        self._system_prompt = system_prompt
        self._request_template = request_template or SUMMARY_REQUEST_TEMPLATE

    async def __call__(self, messages: List[Message], prompt: str, model: str) -> str:
        transcript = format_transcript(messages)
        logger.info(
            f"📝 Summarizing {len(messages)} messages "
            f"({len(transcript)} chars) with {model}"
        )
        lc_messages = [
            SystemMessage(content=self._system_prompt),
            HumanMessage(content=self._request_template.format(
                prompt=prompt or "",
                transcript=transcript,
            )),
        ]
        response = await _ainvoke(self._model_factory, model, lc_messages, self._transient_errors)
        text = _response_text(response)
        if not text:
            raise CapabilityError(f"Model '{model}' returned an empty summary")
        return text
