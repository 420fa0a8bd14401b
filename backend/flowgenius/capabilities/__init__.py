"""
Capabilities Package.

Injected generation, summarization and transcription collaborators.
The OpenAI-backed provider is imported lazily by callers
(``flowgenius.capabilities.openai_provider``) so that the core and
tests do not construct network clients.
"""

from flowgenius.capabilities.base import (
    CapabilityProvider,
    Summarizer,
    Transcriber,
    TurnGenerator,
)
from flowgenius.capabilities.chat_model import (
    CachedModelFactory,
    ChatModelSummarizer,
    ChatModelTurnGenerator,
    format_transcript,
    to_langchain_messages,
)

__all__ = [
    "CapabilityProvider",
    "Summarizer",
    "Transcriber",
    "TurnGenerator",
    "CachedModelFactory",
    "ChatModelSummarizer",
    "ChatModelTurnGenerator",
    "format_transcript",
    "to_langchain_messages",
]
