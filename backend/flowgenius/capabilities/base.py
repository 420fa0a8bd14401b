"""
Capabilities — injected collaborators used by the workflow nodes.

Nodes never construct model clients themselves. They ask the
``CapabilityProvider`` carried on the execution context for:

    - a ``TurnGenerator`` per stage (assistant reply for a chat turn)
    - a ``Summarizer`` (structured summary of the brainstorm)
    - a ``Transcriber`` (speech-to-text for pending voice input)

Any async callable with the right signature satisfies a protocol,
so tests can inject plain ``async def`` functions.
"""

from __future__ import annotations

from logging import getLogger
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from flowgenius.workflow.errors import CapabilityError
from flowgenius.workflow.workflow_state import Message, Stage, enum_value

logger = getLogger(__name__)


@runtime_checkable
class TurnGenerator(Protocol):
    async def __call__(self, messages: List[Message], prompt: str, model: str) -> str:
        ...


@runtime_checkable
class Summarizer(Protocol):
    async def __call__(self, messages: List[Message], prompt: str, model: str) -> str:
        ...


@runtime_checkable
class Transcriber(Protocol):
    async def __call__(self, file_path: str, mime_type: str) -> str:
        ...


class CapabilityProvider:
    """Lookup table of the collaborators a tick may need.

    ``turn_generators`` is keyed by stage value; a missing entry is
    reported as ``CapabilityError`` at lookup time, which the calling
    node folds into the session's ``error`` field.
    """

    def __init__(
        self,
        turn_generators: Optional[Mapping[Any, TurnGenerator]] = None,
        summarizer: Optional[Summarizer] = None,
        transcriber: Optional[Transcriber] = None,
    ) -> None:
        self._turn_generators: Dict[str, TurnGenerator] = {
            Stage(enum_value(stage)).value: fn
            for stage, fn in (turn_generators or {}).items()
        }
        self._summarizer = summarizer
        self._transcriber = transcriber

    def turn_generator_for(self, stage: Any) -> TurnGenerator:
        key = enum_value(stage)
        generator = self._turn_generators.get(key)
        if generator is None:
            raise CapabilityError(f"No turn generator configured for stage '{key}'")
        return generator

    @property
    def summarizer(self) -> Summarizer:
        if self._summarizer is None:
            raise CapabilityError("No summarizer configured")
        return self._summarizer

    @property
    def transcriber(self) -> Transcriber:
        if self._transcriber is None:
            raise CapabilityError("No transcriber configured")
        return self._transcriber

    @property
    def stages(self) -> List[str]:
        return list(self._turn_generators.keys())

    def __repr__(self) -> str:
        return (
            f"CapabilityProvider(stages={self.stages}, "
            f"summarizer={self._summarizer is not None}, "
            f"transcriber={self._transcriber is not None})"
        )
