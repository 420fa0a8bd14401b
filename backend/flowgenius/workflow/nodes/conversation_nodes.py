"""
Conversation Nodes — chat turn and voice input handling.

``processUserTurn`` produces the assistant reply for the latest user
message (or the welcome message on an empty conversation).
``processVoiceInput`` transcribes pending voice audio into a user
message so that the next tick can reply to it.
"""

from __future__ import annotations

from logging import getLogger

from flowgenius.workflow.nodes.base import (
    BaseNode,
    ExecutionContext,
    error_patch,
    make_patch,
    register_node,
)
from flowgenius.workflow.state_validator import validate_session_state
from flowgenius.workflow.workflow_state import (
    Message,
    MessageRole,
    NodeStateUsage,
    SessionPatch,
    SessionState,
    UserAction,
    enum_value,
)

logger = getLogger(__name__)

WELCOME_MESSAGE = (
    "Hello! I'm FlowGenius, your AI thought partner. I'm here to help you "
    "brainstorm and explore your idea comprehensively. Let's start by telling "
    "me about your idea - what problem are you trying to solve or what "
    "opportunity are you exploring?"
)


def _is_chat(state: SessionState) -> bool:
    return enum_value(state.last_user_action) == UserAction.CHAT.value


# ============================================================================
# Process User Turn
# ============================================================================


@register_node
class ProcessUserTurnNode(BaseNode):
    """Reply to the latest user message in the current stage.

    Branches:
        - no messages       -> append the welcome message
        - last is assistant -> nothing to react to, clear the flag only
        - last is user      -> ask the stage's turn generator for a reply
    """

    node_type = "processUserTurn"
    label = "Process User Turn"
    description = "Generate the assistant reply for the latest user message"
    category = "conversation"
    state_usage = NodeStateUsage(
        reads=["messages", "stage", "last_user_action", "is_processing",
               "user_prompts", "selected_models"],
        writes=["messages", "error", "last_user_action", "is_processing"],
    )

    async def execute(
        self,
        state: SessionState,
        context: ExecutionContext,
    ) -> SessionPatch:
        validate_session_state(state)

        if state.is_processing:
            logger.warning(f"[{context.session_id}] processUserTurn: already processing, skipping")
            return {}
        if not _is_chat(state):
            return {}

        try:
            last = state.last_message
            if last is None:
                logger.info(f"[{context.session_id}] processUserTurn: empty conversation, sending welcome")
                welcome = Message(
                    role=MessageRole.ASSISTANT,
                    content=WELCOME_MESSAGE,
                    stage_at_creation=state.stage,
                )
                return make_patch(messages=[welcome], is_processing=False)

            if last.role != MessageRole.USER:
                logger.debug(f"[{context.session_id}] processUserTurn: last message is not from user")
                return make_patch(is_processing=False)

            generator = context.capabilities.turn_generator_for(state.stage)
            model = state.model_for(state.stage)
            reply = await context.call_capability(
                self.node_type,
                generator,
                list(state.messages),
                state.prompt_for(state.stage),
                model,
            )
            logger.info(
                f"[{context.session_id}] processUserTurn: reply generated "
                f"({len(reply)} chars, stage={enum_value(state.stage)}, model={model})"
            )

            message = Message(
                role=MessageRole.ASSISTANT,
                content=reply,
                stage_at_creation=state.stage,
            )
            return make_patch(
                messages=[*state.messages, message],
                error=None,
                last_user_action=UserAction.CHAT,
                is_processing=False,
            )

        except Exception as e:
            logger.exception(f"[{context.session_id}] processUserTurn error: {e}")
            return error_patch(e)


# ============================================================================
# Process Voice Input
# ============================================================================


@register_node
class ProcessVoiceInputNode(BaseNode):
    """Transcribe pending voice audio into a user message.

    Every outcome clears ``voice_pending`` so the router does not
    send the same recording through transcription twice.
    """

    node_type = "processVoiceInput"
    label = "Process Voice Input"
    description = "Transcribe pending voice audio into a user chat message"
    category = "conversation"
    state_usage = NodeStateUsage(
        reads=["voice_audio_data", "voice_pending", "last_user_action",
               "is_processing", "error", "stage", "messages"],
        writes=["messages", "voice_transcription", "voice_pending",
                "last_user_action", "is_processing", "error"],
    )

    async def execute(
        self,
        state: SessionState,
        context: ExecutionContext,
    ) -> SessionPatch:
        validate_session_state(state)

        if not _is_chat(state) or state.is_processing or state.error:
            return {}

        audio = state.voice_audio_data
        if audio is None:
            logger.error(f"[{context.session_id}] processVoiceInput: no audio data")
            return make_patch(
                is_processing=False,
                error="No voice audio data found in state",
                voice_pending=False,
            )

        try:
            logger.info(
                f"[{context.session_id}] 🎤 processVoiceInput: transcribing "
                f"{audio.file_path} ({audio.mime_type}, {audio.size} bytes, {audio.duration}s)"
            )
            text = (await context.call_capability(
                self.node_type, context.capabilities.transcriber, audio.file_path, audio.mime_type,
            )).strip()
            if not text:
                raise ValueError("Voice transcription resulted in empty text")

            message = Message(
                role=MessageRole.USER,
                content=text,
                stage_at_creation=state.stage,
            )
            return make_patch(
                messages=[*state.messages, message],
                voice_transcription=text,
                voice_pending=False,
                last_user_action=UserAction.CHAT,
                is_processing=False,
                error=None,
            )

        except Exception as e:
            logger.exception(f"[{context.session_id}] processVoiceInput error: {e}")
            return error_patch(e, voice_pending=False)
