"""Models module for Pydantic schemas.

This module exposes all request/response models used by the API.
"""

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

__all__ = [
    "AgentHandleResponse",
    "AgentsStatusResponse",
    "EventResponse",
    "HealthResponse",
    "SweepRequest",
    "TaskRequest",
    "TaskResponse",
    "TaskTypeMetricsResponse",
]
