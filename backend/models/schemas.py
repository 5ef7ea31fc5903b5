"""Pydantic schemas for API request/response models.

This module defines the data models used by the HTTP API. Sweep results and
task payloads are returned as the domain models from ``unconscious``; the
models here wrap requests and observability responses.
All models use Pydantic v2 with strict type validation.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from unconscious.payloads import TaskPayload
from unconscious.registry import AgentStatus
from unconscious.tasks import SweepOptions, TaskType


class SweepRequest(BaseModel):
    """Request body for running a sweep over one conversational turn."""

    user_id: str = Field(
        min_length=1,
        description="User the turn belongs to",
        examples=["user_42"],
    )
    session_id: str = Field(
        min_length=1,
        description="Conversation session identifier",
        examples=["sess_a1b2c3d4"],
    )
    message: str = Field(
        min_length=1,
        max_length=20000,
        description="The user message to analyze",
        examples=["I finally shipped the release, but I'm exhausted."],
    )
    include_insights: bool = Field(
        default=False,
        description="Also run insight generation",
    )
    include_roles: bool = Field(
        default=True,
        description="Run role detection",
    )
    include_experience: bool = Field(
        default=True,
        description="Run experience synthesis after the first phase",
    )

    def to_options(self) -> SweepOptions:
        return SweepOptions(
            include_insights=self.include_insights,
            include_roles=self.include_roles,
            include_experience=self.include_experience,
        )


class TaskRequest(BaseModel):
    """Request body for running a single ad hoc task."""

    user_id: str = Field(
        min_length=1,
        description="User the message belongs to",
    )
    message: str = Field(
        min_length=1,
        max_length=20000,
        description="The message to analyze",
    )
    session_id: str | None = Field(
        default=None,
        description="Session identifier; generated when omitted",
    )


class TaskResponse(BaseModel):
    """Result of a single ad hoc task."""

    task_type: TaskType = Field(description="The task type that ran")
    payload: TaskPayload | None = Field(
        default=None,
        description="Typed payload, or null if the task failed",
    )


class AgentHandleResponse(BaseModel):
    """One in-flight engine process."""

    id: str = Field(description="Agent identifier")
    task_id: str = Field(description="Task the agent is running")
    task_type: str = Field(description="Type of that task")
    pid: int | None = Field(default=None, description="OS process id")
    started_at: float = Field(description="Unix timestamp of spawn")
    status: AgentStatus = Field(description="Agent status")


class TaskTypeMetricsResponse(BaseModel):
    """Cumulative outcomes for one task type."""

    runs: int = Field(default=0, ge=0)
    succeeded: int = Field(default=0, ge=0)
    failures: dict[str, int] = Field(
        default_factory=dict,
        description="Failed task count per error kind",
    )
    mean_latency_ms: float = Field(default=0.0, ge=0.0)
    max_latency_ms: int = Field(default=0, ge=0)


class AgentsStatusResponse(BaseModel):
    """Registry snapshot plus cumulative task metrics."""

    active_count: int = Field(ge=0, description="Engine processes in flight")
    max_concurrent_configured: int = Field(
        ge=1,
        description="Configured concurrency limit",
    )
    agents: list[AgentHandleResponse] = Field(default_factory=list)
    metrics: dict[str, TaskTypeMetricsResponse] = Field(
        default_factory=dict,
        description="Per task type outcome counters",
    )


class EventResponse(BaseModel):
    """A recorded sweep or task event."""

    type: str = Field(description="Event type")
    timestamp: float = Field(description="Unix timestamp of the event")
    session_id: str = Field(description="Session the event belongs to")
    task_id: str | None = Field(default=None, description="Originating task")
    data: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Health check response with engine status."""

    status: Literal["healthy", "unhealthy"] = Field(
        description="Overall health status",
    )
    timestamp: float = Field(
        description="Current server timestamp",
    )
    version: str = Field(
        default="0.1.0",
        description="API version",
    )
    engine_available: bool = Field(
        default=False,
        description="Whether the engine executable is on PATH",
    )
    active_agents: int = Field(
        default=0,
        description="Number of engine processes in flight",
    )
