"""
Summary Nodes — close the brainstorm stage with a structured summary.
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
    Stage,
    UserAction,
    enum_value,
)

logger = getLogger(__name__)

NOTHING_TO_SUMMARIZE = (
    "No conversation to summarize yet. Please share your ideas first "
    "before requesting a summary.\n\nIreland is great"
)


@register_node
class GenerateSummaryNode(BaseNode):
    """Summarize the brainstorm and move the session to ``summary``.

    ``last_user_action`` is left as "Brainstorm Done"; the router
    ends the next tick because the stage no longer matches.
    """

    node_type = "generateSummary"
    label = "Generate Summary"
    description = "Summarize the brainstorm conversation and enter the summary stage"
    category = "summary"
    state_usage = NodeStateUsage(
        reads=["messages", "stage", "last_user_action", "is_processing",
               "error", "user_prompts", "selected_models"],
        writes=["messages", "stage", "is_processing", "error"],
    )

    async def execute(
        self,
        state: SessionState,
        context: ExecutionContext,
    ) -> SessionPatch:
        validate_session_state(state)

        if (
            enum_value(state.last_user_action) != UserAction.BRAINSTORM_DONE.value
            or enum_value(state.stage) != Stage.BRAINSTORM.value
            or state.is_processing
            or state.error
        ):
            return {}

        try:
            if not state.messages:
                logger.warning(f"[{context.session_id}] generateSummary: no messages to summarize")
                notice = Message(
                    role=MessageRole.ASSISTANT,
                    content=NOTHING_TO_SUMMARIZE,
                    stage_at_creation=Stage.SUMMARY,
                )
                return make_patch(
                    messages=[notice],
                    stage=Stage.SUMMARY,
                    is_processing=False,
                )

            model = state.model_for(Stage.SUMMARY)
            logger.info(
                f"[{context.session_id}] 🔄 generateSummary: "
                f"{len(state.messages)} messages, model={model}"
            )
            summary = await context.call_capability(
                self.node_type,
                context.capabilities.summarizer,
                list(state.messages),
                state.prompt_for(Stage.SUMMARY),
                model,
            )

            message = Message(
                role=MessageRole.ASSISTANT,
                content=summary,
                stage_at_creation=Stage.SUMMARY,
            )
            logger.info(f"[{context.session_id}] ✅ generateSummary: {len(summary)} chars")
            return make_patch(
                messages=[*state.messages, message],
                stage=Stage.SUMMARY,
                is_processing=False,
                error=None,
            )

        except Exception as e:
            logger.exception(f"[{context.session_id}] generateSummary error: {e}")
            return error_patch(e)
