"""
HTTP rendition of the transport boundary.

Every route answers with a ``TransportResult`` envelope; failures are
reported in the envelope (``success=false``) rather than as HTTP
errors, so the client handles both channels identically.

    POST   /workflow/execute        -> one tick
    POST   /workflow/validate       -> validation report
    POST   /sessions                -> create session
    GET    /sessions/{id}           -> current state
    GET    /sessions/{id}/metrics   -> logger execution summary
                                       + node health
    DELETE /sessions/{id}           -> drop session + logger
    GET    /workflow/health         -> node health and circuit states
    POST   /workflow/health/reset   -> reset one node (or all)
    GET    /workflow/schema         -> node catalog, state fields, models
    GET    /health
"""

from __future__ import annotations

from logging import getLogger
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request

from flowgenius.capabilities.base import CapabilityProvider
from flowgenius.config import WorkflowConfig, configure_logging
from flowgenius.transport.handler import WorkflowRequestHandler
from flowgenius.transport.models import (
    CreateSessionRequest,
    ExecuteRequest,
    ResetHealthRequest,
    TransportResult,
    ValidateStateRequest,
)
from flowgenius.workflow.error_handler import NodeErrorHandler
from flowgenius.workflow.session_registry import SessionRegistry
from flowgenius.workflow.workflow_executor import WorkflowExecutor

logger = getLogger(__name__)

router = APIRouter()


def _handler(request: Request) -> WorkflowRequestHandler:
    return request.app.state.workflow_handler


def _envelope(result: TransportResult) -> Dict[str, Any]:
    return result.model_dump(mode="json")


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.post("/workflow/execute")
async def execute_workflow(body: ExecuteRequest, request: Request) -> Dict[str, Any]:
    return _envelope(await _handler(request).execute(body.state))


@router.post("/workflow/validate")
async def validate_state(body: ValidateStateRequest, request: Request) -> Dict[str, Any]:
    return _envelope(await _handler(request).validate_state(body.state))


@router.get("/workflow/health")
async def workflow_health(request: Request) -> Dict[str, Any]:
    return _envelope(await _handler(request).get_health())


@router.post("/workflow/health/reset")
async def reset_workflow_health(body: ResetHealthRequest, request: Request) -> Dict[str, Any]:
    return _envelope(await _handler(request).reset_node_health(body.node_name))


@router.get("/workflow/schema")
async def workflow_schema(request: Request) -> Dict[str, Any]:
    return _envelope(await _handler(request).get_schema())


@router.post("/sessions")
async def create_session(body: CreateSessionRequest, request: Request) -> Dict[str, Any]:
    return _envelope(await _handler(request).create_session(body.session_id, body.user_id))


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, request: Request) -> Dict[str, Any]:
    return _envelope(await _handler(request).get_session(session_id))


@router.get("/sessions/{session_id}/metrics")
async def get_metrics(session_id: str, request: Request) -> Dict[str, Any]:
    return _envelope(await _handler(request).get_metrics(session_id))


@router.delete("/sessions/{session_id}")
async def clear_session(session_id: str, request: Request) -> Dict[str, Any]:
    return _envelope(await _handler(request).clear_session(session_id))


def create_app(
    config: Optional[WorkflowConfig] = None,
    capabilities: Optional[CapabilityProvider] = None,
) -> FastAPI:
    """Wire registry, executor and handler into a FastAPI app.

    Without explicit ``capabilities`` the OpenAI-backed provider is built
    from ``config``.
    """
    config = config or WorkflowConfig.get_default_instance()
    configure_logging(config.log_level)

    problems = config.validate()
    if problems:
        raise ValueError("Invalid workflow config:\n" + "\n".join(f"  • {p}" for p in problems))

    if capabilities is None:
        from flowgenius.capabilities.openai_provider import build_openai_capabilities
        capabilities = build_openai_capabilities(config)

    registry = SessionRegistry()
    executor = WorkflowExecutor(capabilities, error_handler=NodeErrorHandler.from_config(config))
    executor.compile()

    app = FastAPI(title="FlowGenius Workflow", version="0.1.0")
    app.state.config = config
    app.state.workflow_handler = WorkflowRequestHandler(
        registry,
        executor,
        debug_mode=config.debug_mode,
        max_history=config.max_history,
    )
    app.include_router(router)

    logger.info(f"🚀 FlowGenius workflow API ready (debug={config.debug_mode})")
    return app
