"""
State Validator — structural invariant checks run before any transition.

``validate_session_state`` guards every executor tick and raises on the
first violation. ``check_session_state`` collects every issue without
raising, for client-side pre-flight checks across the transport.

Only enum membership is checked for ``stage`` and ``last_user_action``;
transition legality (e.g. jumping straight to ``prd``) is left to callers.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from logging import getLogger
from typing import Any, List, Tuple

from pydantic import BaseModel, Field

from flowgenius.workflow.errors import StateValidationError
from flowgenius.workflow.workflow_state import (
    STAGE_VALUES,
    USER_ACTION_VALUES,
    enum_value,
)

logger = getLogger(__name__)

_MISSING = object()


class ValidationReport(BaseModel):
    """Outcome of a non-raising validation pass."""

    is_valid: bool
    issues: List[str] = Field(default_factory=list)


def _read(state: Any, name: str) -> Any:
    if isinstance(state, Mapping):
        return state.get(name, _MISSING)
    return getattr(state, name, _MISSING)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _collect_issues(state: Any, stop_at_first: bool) -> List[Tuple[str, str]]:
    """Return ``(field, reason)`` pairs in check order."""
    issues: List[Tuple[str, str]] = []

    session_id = _read(state, "session_id")
    if not isinstance(session_id, str) or not session_id:
        issues.append(("session_id", "Invalid idea_id: must be a non-empty string"))
        if stop_at_first:
            return issues

    stage = enum_value(_read(state, "stage"))
    if stage not in STAGE_VALUES:
        issues.append(("stage", "Invalid current_stage: must be brainstorm, summary, or prd"))
        if stop_at_first:
            return issues

    action = enum_value(_read(state, "last_user_action"))
    if action not in USER_ACTION_VALUES:
        issues.append(("last_user_action", "Invalid last_user_action: must be a valid action type"))
        if stop_at_first:
            return issues

    if not _is_sequence(_read(state, "messages")):
        issues.append(("messages", "Invalid messages: must be a sequence"))

    return issues


def validate_session_state(state: Any) -> bool:
    """Return ``True`` or raise ``StateValidationError`` on the first violation."""
    issues = _collect_issues(state, stop_at_first=True)
    if issues:
        field_name, reason = issues[0]
        session_id = _read(state, "session_id")
        logger.error(
            f"[{session_id if session_id is not _MISSING else '?'}] "
            f"State validation failed: {reason}"
        )
        raise StateValidationError(reason, field=field_name)
    return True


def check_session_state(state: Any) -> ValidationReport:
    """Validate without raising and report every issue found."""
    issues = [reason for _, reason in _collect_issues(state, stop_at_first=False)]
    if issues:
        logger.warning(f"Workflow state validation failed: {issues}")
    return ValidationReport(is_valid=not issues, issues=issues)


def is_session_state(state: Any) -> bool:
    try:
        return validate_session_state(state)
    except StateValidationError:
        return False
