"""HTTP API routes for the unconscious sweep backend.

This module defines the HTTP endpoints for running sweeps and single tasks,
inspecting in-flight agents and recorded events, and health checks. Live
event streaming is handled via WebSocket in websocket.py.
"""

from __future__ import annotations

import shutil
import time
from dataclasses import asdict
from typing import TYPE_CHECKING, Annotated

import structlog
from fastapi import APIRouter, HTTPException, Path, status

from config import settings
from models.schemas import (
    AgentHandleResponse,
    AgentsStatusResponse,
    EventResponse,
    HealthResponse,
    SweepRequest,
    TaskRequest,
    TaskResponse,
    TaskTypeMetricsResponse,
)
from unconscious.tasks import SweepResult, TaskType

if TYPE_CHECKING:
    from unconscious.sweep import SweepOrchestrator

logger = structlog.get_logger(__name__)

router = APIRouter()


# Orchestrator dependency (set during application startup)
_orchestrator: SweepOrchestrator | None = None


def set_orchestrator(orchestrator: SweepOrchestrator) -> None:
    """Set the orchestrator instance for the routes.

    This should be called during application startup to inject the
    orchestrator dependency.

    Args:
        orchestrator: The SweepOrchestrator instance to use for all routes.
    """
    global _orchestrator
    _orchestrator = orchestrator
    logger.info("orchestrator_configured")


def get_orchestrator() -> SweepOrchestrator:
    """Get the orchestrator instance.

    Raises:
        RuntimeError: If the orchestrator has not been configured.
    """
    if _orchestrator is None:
        logger.error("orchestrator_not_configured")
        raise RuntimeError(
            "SweepOrchestrator not configured. Call set_orchestrator() during startup."
        )
    return _orchestrator


@router.post(
    "/api/sweeps",
    response_model=SweepResult,
    summary="Run a sweep",
    description="Run every enabled unconscious task for one conversational turn.",
)
async def run_sweep(request: SweepRequest) -> SweepResult:
    """Run a full sweep and return its assembled result.

    Individual task failures only leave their slot empty; the request
    fails only if the sweep itself could not be orchestrated.

    Raises:
        HTTPException: If orchestration fails.
    """
    orchestrator = get_orchestrator()

    try:
        return await orchestrator.process_sweep(
            user_id=request.user_id,
            session_id=request.session_id,
            message=request.message,
            options=request.to_options(),
        )
    except Exception as e:
        logger.error(
            "sweep_request_failed",
            error=str(e),
            session_id=request.session_id,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Sweep failed: {e}",
        ) from e


@router.post(
    "/api/tasks/{task_type}",
    response_model=TaskResponse,
    summary="Run a single task",
    description="Run one unconscious task ad hoc. The payload is null if the task failed.",
)
async def run_task(
    task_type: Annotated[TaskType, Path(description="The task type to run")],
    request: TaskRequest,
) -> TaskResponse:
    """Run one task outside of a sweep."""
    orchestrator = get_orchestrator()

    try:
        payload = await orchestrator.run_single(
            task_type,
            request.user_id,
            request.message,
            session_id=request.session_id,
        )
    except Exception as e:
        logger.error("task_request_failed", task_type=task_type.value, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Task failed: {e}",
        ) from e

    return TaskResponse(task_type=task_type, payload=payload)


@router.get(
    "/api/agents",
    response_model=AgentsStatusResponse,
    summary="Inspect agents",
    description="Snapshot of in-flight engine processes plus cumulative task metrics.",
)
async def get_agents() -> AgentsStatusResponse:
    orchestrator = get_orchestrator()
    snapshot = orchestrator.registry.snapshot()
    collector = orchestrator.executor.metrics
    metrics = collector.snapshot() if collector is not None else {}

    return AgentsStatusResponse(
        active_count=snapshot.active_count,
        max_concurrent_configured=snapshot.max_concurrent_configured,
        agents=[AgentHandleResponse(**asdict(handle)) for handle in snapshot.agents],
        metrics={
            task_type: TaskTypeMetricsResponse(**m.to_dict())
            for task_type, m in metrics.items()
        },
    )


@router.get(
    "/api/sessions/{session_id}/events",
    response_model=list[EventResponse],
    summary="Get session events",
    description="Recorded sweep and task events for a session, oldest first.",
)
async def get_session_events(
    session_id: Annotated[str, Path(description="The session ID")],
) -> list[EventResponse]:
    """Return the event history recorded for a session.

    Unknown sessions have an empty history.
    """
    event_bus = get_orchestrator().event_bus
    if event_bus is None:
        return []

    return [
        EventResponse(**event.model_dump(mode="json"))
        for event in event_bus.get_event_history(session_id)
    ]


@router.delete(
    "/api/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close a session",
    description="End live event streams for a session and drop its event history.",
)
async def close_session(
    session_id: Annotated[str, Path(description="The session ID")],
) -> None:
    event_bus = get_orchestrator().event_bus
    if event_bus is None:
        return

    await event_bus.close_session(session_id)
    event_bus.clear_event_history(session_id)
    logger.info("session_events_cleared", session_id=session_id)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Health check endpoint with engine availability and agent count.",
)
async def health_check() -> HealthResponse:
    """Health check endpoint with engine status.

    The service is healthy when the engine executable can be found; a
    missing engine turns every task into a spawn failure.
    """
    engine_command = settings.engine_command
    active_agents = 0

    try:
        orchestrator = get_orchestrator()
        engine_command = orchestrator.executor.engine.command
        active_agents = orchestrator.registry.active_count
    except RuntimeError:
        # Orchestrator not configured yet (e.g., during startup)
        pass

    engine_available = shutil.which(engine_command) is not None
    return HealthResponse(
        status="healthy" if engine_available else "unhealthy",
        timestamp=time.time(),
        engine_available=engine_available,
        active_agents=active_agents,
    )
