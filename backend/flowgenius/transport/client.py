"""
Workflow Client — caller side of the transport boundary.

``WorkflowClient`` talks to a ``WorkflowRequestHandler`` through a
channel: ``LocalChannel`` calls it in-process, ``HttpChannel`` goes
through the FastAPI routes with httpx. ``execute`` is retried with a
linearly growing delay; the other operations fail fast.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import Any, Dict, Optional, Protocol

import httpx

from flowgenius.transport.handler import WorkflowRequestHandler
from flowgenius.transport.models import TransportResult, WorkflowHealth, WorkflowMetrics, WorkflowSchema
from flowgenius.workflow.errors import TransportError
from flowgenius.workflow.state_validator import ValidationReport
from flowgenius.workflow.workflow_state import SessionState

logger = getLogger(__name__)


class WorkflowChannel(Protocol):
    async def execute(self, state: SessionState) -> TransportResult: ...
    async def create_session(self, session_id: str, user_id: Optional[str] = None) -> TransportResult: ...
    async def validate_state(self, state: Any) -> TransportResult: ...
    async def get_metrics(self, session_id: str) -> TransportResult: ...
    async def get_session(self, session_id: str) -> TransportResult: ...
    async def clear_session(self, session_id: str) -> TransportResult: ...
    async def get_health(self) -> TransportResult: ...
    async def reset_node_health(self, node_name: Optional[str] = None) -> TransportResult: ...
    async def get_schema(self) -> TransportResult: ...


# ============================================================================
# Channels
# ============================================================================


class LocalChannel:
    """In-process channel straight to a handler."""

    def __init__(self, handler: WorkflowRequestHandler) -> None:
        self._handler = handler

    async def execute(self, state: SessionState) -> TransportResult:
        return await self._handler.execute(state)

    async def create_session(self, session_id: str, user_id: Optional[str] = None) -> TransportResult:
        return await self._handler.create_session(session_id, user_id)

    async def validate_state(self, state: Any) -> TransportResult:
        return await self._handler.validate_state(state)

    async def get_metrics(self, session_id: str) -> TransportResult:
        return await self._handler.get_metrics(session_id)

    async def get_session(self, session_id: str) -> TransportResult:
        return await self._handler.get_session(session_id)

    async def clear_session(self, session_id: str) -> TransportResult:
        return await self._handler.clear_session(session_id)

    async def get_health(self) -> TransportResult:
        return await self._handler.get_health()

    async def reset_node_health(self, node_name: Optional[str] = None) -> TransportResult:
        return await self._handler.reset_node_health(node_name)

    async def get_schema(self) -> TransportResult:
        return await self._handler.get_schema()


class HttpChannel:
    """Channel over the HTTP routes in ``flowgenius.transport.api``."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _request(self, method: str, url: str, json: Optional[Dict[str, Any]] = None) -> TransportResult:
        response = await self._client.request(method, url, json=json)
        response.raise_for_status()
        return TransportResult.model_validate(response.json())

    async def execute(self, state: SessionState) -> TransportResult:
        return await self._request("POST", "/workflow/execute", {"state": state.model_dump(mode="json")})

    async def create_session(self, session_id: str, user_id: Optional[str] = None) -> TransportResult:
        return await self._request("POST", "/sessions", {"session_id": session_id, "user_id": user_id})

    async def validate_state(self, state: Any) -> TransportResult:
        payload = state.model_dump(mode="json") if isinstance(state, SessionState) else dict(state)
        return await self._request("POST", "/workflow/validate", {"state": payload})

    async def get_metrics(self, session_id: str) -> TransportResult:
        return await self._request("GET", f"/sessions/{session_id}/metrics")

    async def get_session(self, session_id: str) -> TransportResult:
        return await self._request("GET", f"/sessions/{session_id}")

    async def clear_session(self, session_id: str) -> TransportResult:
        return await self._request("DELETE", f"/sessions/{session_id}")

    async def get_health(self) -> TransportResult:
        return await self._request("GET", "/workflow/health")

    async def reset_node_health(self, node_name: Optional[str] = None) -> TransportResult:
        return await self._request("POST", "/workflow/health/reset", {"node_name": node_name})

    async def get_schema(self) -> TransportResult:
        return await self._request("GET", "/workflow/schema")

    async def aclose(self) -> None:
        await self._client.aclose()


# ============================================================================
# Client
# ============================================================================


class WorkflowClient:
    """Typed, retrying facade over a channel."""

    def __init__(
        self,
        channel: WorkflowChannel,
        retry_count: int = 3,
        retry_delay_ms: int = 1000,
    ) -> None:
        self._channel = channel
        self._retry_count = max(1, retry_count)
        self._retry_delay_ms = retry_delay_ms

    async def execute(self, state: SessionState) -> SessionState:
        """Run one tick, retrying failures.

        Waits ``attempt * retry_delay_ms`` between attempts and not after
        the last one.

        Raises:
            TransportError: Every attempt failed.
        """
        last_error: Optional[str] = None
        for attempt in range(1, self._retry_count + 1):
            try:
                result = await self._channel.execute(state)
                if result.success and result.data is not None:
                    if attempt > 1:
                        logger.info(f"[{state.session_id}] ✅ Workflow tick succeeded on attempt {attempt}")
                    return SessionState.model_validate(result.data)
                last_error = result.error or "Unknown error"
            except Exception as e:
                last_error = str(e) or type(e).__name__

            will_retry = attempt < self._retry_count
            logger.warning(
                f"[{state.session_id}] ⚠️ Workflow execution attempt {attempt} failed: "
                f"{last_error} (retry={will_retry})"
            )
            if will_retry:
                await asyncio.sleep(self._retry_delay_ms * attempt / 1000)

        raise TransportError(
            f"Workflow execution failed after {self._retry_count} attempts: {last_error}",
            attempts=self._retry_count,
        )

    async def create_session(self, session_id: str, user_id: Optional[str] = None) -> SessionState:
        result = await self._call(self._channel.create_session(session_id, user_id), "Failed to create session")
        return SessionState.model_validate(result.data)

    async def validate_state(self, state: Any) -> ValidationReport:
        result = await self._call(self._channel.validate_state(state), "Validation failed")
        return ValidationReport.model_validate(result.data)

    async def get_metrics(self, session_id: str) -> Optional[WorkflowMetrics]:
        result = await self._call(self._channel.get_metrics(session_id), "Failed to get metrics")
        if result.data is None:
            return None
        return WorkflowMetrics.model_validate(result.data)

    async def get_session(self, session_id: str) -> SessionState:
        result = await self._call(self._channel.get_session(session_id), "Failed to get session")
        return SessionState.model_validate(result.data)

    async def clear_session(self, session_id: str) -> None:
        await self._call(self._channel.clear_session(session_id), "Failed to clear session")

    async def get_health(self) -> WorkflowHealth:
        result = await self._call(self._channel.get_health(), "Failed to get workflow health")
        return WorkflowHealth.model_validate(result.data)

    async def reset_node_health(self, node_name: Optional[str] = None) -> WorkflowHealth:
        result = await self._call(self._channel.reset_node_health(node_name), "Failed to reset node health")
        return WorkflowHealth.model_validate(result.data)

    async def get_schema(self) -> WorkflowSchema:
        result = await self._call(self._channel.get_schema(), "Failed to get workflow schema")
        return WorkflowSchema.model_validate(result.data)

    @staticmethod
    async def _call(pending, fallback_error: str) -> TransportResult:
        try:
            result = await pending
        except Exception as e:
            raise TransportError(f"{fallback_error}: {e}") from e
        if not result.success:
            raise TransportError(result.error or fallback_error)
        return result
