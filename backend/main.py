"""FastAPI application entry point for the unconscious sweep backend.

This module initializes the FastAPI application with all middleware,
routers, and event handlers configured.

Usage:
    uvicorn main:app --reload
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router, set_orchestrator
from api.websocket import websocket_router
from config import configure_logging, settings
from events import get_event_bus
from metrics import TaskMetricsCollector
from unconscious.process import pending_reapers, wait_for_reapers
from unconscious.sweep import SweepOrchestrator

# Configure structured logging
configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events.

    Builds the orchestrator with its registry, executor and metrics, wired
    to the global event bus.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    logger.info(
        "application_starting",
        backend_port=settings.backend_port,
        log_level=settings.log_level,
        engine_command=settings.engine_command,
        engine_model=settings.engine_model,
        max_concurrent_agents=settings.max_concurrent_agents,
    )

    orchestrator = SweepOrchestrator.from_settings(
        settings,
        event_bus=get_event_bus(),
        metrics=TaskMetricsCollector(),
    )
    set_orchestrator(orchestrator)
    app.state.orchestrator = orchestrator

    logger.info("application_started")

    yield

    logger.info(
        "application_shutting_down",
        active_agents=orchestrator.registry.active_count,
        pending_reapers=pending_reapers(),
    )
    await wait_for_reapers()
    logger.info("application_shutdown_complete")


# Create FastAPI application
app = FastAPI(
    title="Unconscious Sweep",
    description="Parallel background analysis of conversational turns: memory, "
    "emotion, intent, insight, role and experience tasks run as isolated "
    "reasoning-engine processes.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# Include HTTP routes
app.include_router(router, tags=["sweeps"])

# Include WebSocket routes
app.include_router(websocket_router, tags=["websocket"])


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint that points to API documentation.

    Returns:
        A welcome message with documentation URL.
    """
    return {
        "message": "Unconscious Sweep API",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.backend_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
