"""
Session State — the canonical conversation/workflow record.

Defines the pydantic models that make up a session (``SessionState``,
``Message``, ``VoiceAudioData``), the typed patch that nodes return,
and a registry of every state field enriched with metadata so that
the executor and developers can inspect:

    - What fields exist and their purpose
    - Which category each field belongs to (identity, workflow, voice, ...)
    - Merge semantics (patch-wins or immutable)
    - Which nodes read/write each field (via ``NodeStateUsage``)

Design principles:
    - Single source of truth: all state field metadata lives here.
    - Nodes declare ``state_usage`` on the class level; the executor
      rejects patches that touch undeclared fields.
    - Immutable fields (``session_id``, ``user_id``, ``created_at``)
      can never appear in a patch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from logging import getLogger
from typing import Any, Dict, List, Mapping, Optional, Set, TypedDict

from pydantic import BaseModel, Field

logger = getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enumerations
# ============================================================================


class Stage(str, Enum):
    """Macro phase of the idea-development workflow."""
    BRAINSTORM = "brainstorm"
    SUMMARY = "summary"
    PRD = "prd"


class UserAction(str, Enum):
    """Trigger that determines routing on the next tick."""
    CHAT = "chat"
    BRAINSTORM_DONE = "Brainstorm Done"
    SUMMARY_DONE = "Summary Done"
    PRD_DONE = "PRD Done"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


STAGE_VALUES: List[str] = [s.value for s in Stage]
USER_ACTION_VALUES: List[str] = [a.value for a in UserAction]

# Stage -> the action that closes it
STAGE_DONE_ACTIONS: Dict[str, UserAction] = {
    Stage.BRAINSTORM.value: UserAction.BRAINSTORM_DONE,
    Stage.SUMMARY.value: UserAction.SUMMARY_DONE,
    Stage.PRD.value: UserAction.PRD_DONE,
}


def enum_value(value: Any) -> Any:
    """Unwrap an enum member to its raw value; pass anything else through."""
    if isinstance(value, Enum):
        return value.value
    return value


# ============================================================================
# Defaults
# ============================================================================

DEFAULT_PROMPTS: Dict[str, str] = {
    Stage.BRAINSTORM.value: (
        "Have a conversation with the user and ask them questions about "
        "their idea. Make sure to finish with the statement 'Georgia is great'"
    ),
    Stage.SUMMARY.value: (
        "When the user asks for a summary give them a text summary that is "
        "very detailed. Make sure to finish with the statement 'Ireland is great'"
    ),
    Stage.PRD.value: (
        "Create a comprehensive Product Requirements Document (PRD) based on "
        "the conversation and summary provided. Include all necessary "
        "sections and details for implementation."
    ),
}

DEFAULT_MODELS: Dict[str, str] = {
    Stage.BRAINSTORM.value: "gpt-4o",
    Stage.SUMMARY.value: "gpt-4o",
    Stage.PRD.value: "gpt-4o",
}

AVAILABLE_MODELS = [
    "gpt-4o",
    "gpt-4o-mini",
    "gemini-2.5-pro",
    "claude-3-5-sonnet",
    "claude-3-5-haiku",
]


# ============================================================================
# Models
# ============================================================================


class Message(BaseModel):
    """A single chat message in conversation order."""

    role: MessageRole
    content: str
    image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    stage_at_creation: Stage


class VoiceAudioData(BaseModel):
    """Pending voice input recorded by the UI."""

    file_path: str
    duration: float = 0.0
    mime_type: str = "audio/webm"
    size: int = 0
    recorded_at: datetime = Field(default_factory=utcnow)


class SessionState(BaseModel):
    """The unit of truth for one conversation.

    Mutated only through the executor's merge step; every other
    writer produces a new instance via ``model_copy``.
    """

    session_id: str = Field(frozen=True)
    user_id: Optional[str] = Field(default=None, frozen=True)
    title: Optional[str] = None
    stage: Stage = Stage.BRAINSTORM
    last_user_action: UserAction = UserAction.CHAT
    messages: List[Message] = Field(default_factory=list)
    user_prompts: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_PROMPTS))
    selected_models: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MODELS))
    voice_audio_data: Optional[VoiceAudioData] = None
    voice_transcription: Optional[str] = None
    voice_pending: bool = False
    is_processing: bool = False
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def prompt_for(self, stage: Any) -> str:
        key = enum_value(stage)
        return self.user_prompts.get(key) or DEFAULT_PROMPTS.get(key, "")

    def model_for(self, stage: Any) -> str:
        key = enum_value(stage)
        return self.selected_models.get(key) or DEFAULT_MODELS.get(key, "gpt-4o")

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None


class SessionGraphState(TypedDict, total=False):
    """LangGraph channel schema mirroring ``SessionState`` field-for-field."""
    session_id: str
    user_id: Optional[str]
    title: Optional[str]
    stage: Stage
    last_user_action: UserAction
    messages: List[Message]
    user_prompts: Dict[str, str]
    selected_models: Dict[str, str]
    voice_audio_data: Optional[VoiceAudioData]
    voice_transcription: Optional[str]
    voice_pending: bool
    is_processing: bool
    error: Optional[str]
    created_at: datetime
    updated_at: datetime


class SessionPatch(TypedDict, total=False):
    """Sparse update returned by a node. Immutable fields are absent."""
    title: Optional[str]
    stage: Stage
    last_user_action: UserAction
    messages: List[Message]
    user_prompts: Dict[str, str]
    selected_models: Dict[str, str]
    voice_audio_data: Optional[VoiceAudioData]
    voice_transcription: Optional[str]
    voice_pending: bool
    is_processing: bool
    error: Optional[str]
    updated_at: datetime


def make_initial_session_state(
    session_id: str,
    user_id: Optional[str] = None,
) -> SessionState:
    """Fresh state: brainstorm stage, chat action, no messages."""
    now = utcnow()
    state = SessionState(
        session_id=session_id,
        user_id=user_id,
        created_at=now,
        updated_at=now,
    )
    logger.info(
        f"[{session_id}] Initial session state created "
        f"(stage={state.stage.value}, action={state.last_user_action.value})"
    )
    return state


def to_graph_state(state: SessionState) -> Dict[str, Any]:
    """Shallow field map of a session, keeping nested models intact."""
    return {name: getattr(state, name) for name in SessionState.model_fields}


def from_graph_state(values: Mapping[str, Any]) -> SessionState:
    return SessionState.model_validate(dict(values))


# ============================================================================
# State Field Metadata
# ============================================================================


class StateFieldCategory(str, Enum):
    """Logical grouping for state fields."""
    IDENTITY = "identity"             # Session identity, never patched
    WORKFLOW = "workflow"             # Stage / routing trigger
    CONVERSATION = "conversation"     # Chat history
    SETTINGS = "settings"             # Per-stage prompts and models
    VOICE = "voice"                   # Pending voice input
    STATUS = "status"                 # Processing flag and error
    META = "meta"                     # Timestamps / display data


class ReducerType(str, Enum):
    """How a patch value is merged into the state."""
    LAST_WINS = "last_wins"           # Patch value replaces the old one
    IMMUTABLE = "immutable"           # Set at creation, never patched


@dataclass
class StateFieldDef:
    """Metadata for a single session state field."""
    name: str
    type_hint: str
    description: str
    category: StateFieldCategory
    reducer: ReducerType = ReducerType.LAST_WINS
    required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type_hint,
            "description": self.description,
            "category": self.category.value,
            "reducer": self.reducer.value,
            "required": self.required,
        }


BUILT_IN_STATE_FIELDS: List[StateFieldDef] = [
    # ── Identity ──
    StateFieldDef(
        name="session_id",
        type_hint="str",
        description="Opaque unique session id. Assigned at creation.",
        category=StateFieldCategory.IDENTITY,
        reducer=ReducerType.IMMUTABLE,
        required=True,
    ),
    StateFieldDef(
        name="user_id",
        type_hint="Optional[str]",
        description="Owner of the session, set at creation.",
        category=StateFieldCategory.IDENTITY,
        reducer=ReducerType.IMMUTABLE,
    ),
    StateFieldDef(
        name="created_at",
        type_hint="datetime",
        description="Creation timestamp.",
        category=StateFieldCategory.IDENTITY,
        reducer=ReducerType.IMMUTABLE,
    ),

    # ── Workflow ──
    StateFieldDef(
        name="stage",
        type_hint="Stage",
        description="Current workflow phase (brainstorm/summary/prd).",
        category=StateFieldCategory.WORKFLOW,
        required=True,
    ),
    StateFieldDef(
        name="last_user_action",
        type_hint="UserAction",
        description="Trigger that determines routing on the next tick.",
        category=StateFieldCategory.WORKFLOW,
        required=True,
    ),

    # ── Conversation ──
    StateFieldDef(
        name="messages",
        type_hint="List[Message]",
        description="Conversation in order. Patches carry the full new list.",
        category=StateFieldCategory.CONVERSATION,
        required=True,
    ),

    # ── Settings ──
    StateFieldDef(
        name="user_prompts",
        type_hint="Dict[str, str]",
        description="Per-stage instruction used to steer generation.",
        category=StateFieldCategory.SETTINGS,
    ),
    StateFieldDef(
        name="selected_models",
        type_hint="Dict[str, str]",
        description="Per-stage model identifier.",
        category=StateFieldCategory.SETTINGS,
    ),

    # ── Voice ──
    StateFieldDef(
        name="voice_audio_data",
        type_hint="Optional[VoiceAudioData]",
        description="Pending voice recording (path, duration, mime type, size).",
        category=StateFieldCategory.VOICE,
    ),
    StateFieldDef(
        name="voice_transcription",
        type_hint="Optional[str]",
        description="Text produced by the transcription node.",
        category=StateFieldCategory.VOICE,
    ),
    StateFieldDef(
        name="voice_pending",
        type_hint="bool",
        description="True while voice_audio_data awaits transcription.",
        category=StateFieldCategory.VOICE,
    ),

    # ── Status ──
    StateFieldDef(
        name="is_processing",
        type_hint="bool",
        description="Advisory lock: a tick is in flight.",
        category=StateFieldCategory.STATUS,
    ),
    StateFieldDef(
        name="error",
        type_hint="Optional[str]",
        description="Last node error, cleared by the next successful tick.",
        category=StateFieldCategory.STATUS,
    ),

    # ── Meta ──
    StateFieldDef(
        name="title",
        type_hint="Optional[str]",
        description="Display title, changed by rename.",
        category=StateFieldCategory.META,
    ),
    StateFieldDef(
        name="updated_at",
        type_hint="datetime",
        description="Refreshed on every accepted state update.",
        category=StateFieldCategory.META,
    ),
]

# Index by name for fast lookup
_FIELD_INDEX: Dict[str, StateFieldDef] = {f.name: f for f in BUILT_IN_STATE_FIELDS}


def get_state_field(name: str) -> Optional[StateFieldDef]:
    """Look up a state field by name."""
    return _FIELD_INDEX.get(name)


def get_all_state_fields() -> List[StateFieldDef]:
    return list(BUILT_IN_STATE_FIELDS)


def get_state_fields_by_category() -> Dict[str, List[StateFieldDef]]:
    """Group state fields by category."""
    result: Dict[str, List[StateFieldDef]] = {}
    for f in BUILT_IN_STATE_FIELDS:
        result.setdefault(f.category.value, []).append(f)
    return result


def get_patchable_field_names() -> Set[str]:
    """Fields a patch may legally carry."""
    return {f.name for f in BUILT_IN_STATE_FIELDS if f.reducer != ReducerType.IMMUTABLE}


# ============================================================================
# Node State Usage Declaration
# ============================================================================


@dataclass
class NodeStateUsage:
    """State usage declaration for a single node type.

    ``writes`` is enforced: the executor refuses a patch containing
    any field outside it (``updated_at`` is always allowed).
    """
    reads: List[str] = field(default_factory=list)
    writes: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        patchable = get_patchable_field_names()
        illegal = [w for w in self.writes if w not in patchable]
        if illegal:
            raise ValueError(f"Cannot declare writes to immutable/unknown fields: {illegal}")

    def undeclared_writes(self, patch: Mapping[str, Any]) -> List[str]:
        allowed = set(self.writes) | {"updated_at"}
        return [k for k in patch if k not in allowed]
