"""Event type definitions for the sweep event system.

This module defines the lifecycle events emitted while a sweep runs. Every
task start, task outcome and phase boundary produces an event on the
session's stream.
"""

import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class EventType(StrEnum):
    """All event types in the sweep system.

    Events are categorized by:
    - Sweep lifecycle: Start, per-phase progress, and completion
    - Task lifecycle: Start and terminal outcome of each subtask
    - Stream control: Session closed sentinel
    """

    # Sweep lifecycle
    SWEEP_STARTED = "sweep_started"
    SWEEP_PHASE_STARTED = "sweep_phase_started"
    SWEEP_PHASE_COMPLETE = "sweep_phase_complete"
    SWEEP_COMPLETE = "sweep_complete"

    # Task lifecycle
    TASK_STARTED = "task_started"
    TASK_COMPLETE = "task_complete"
    TASK_FAILED = "task_failed"

    # Stream control
    SESSION_CLOSED = "session_closed"


class AgentEvent(BaseModel):
    """An event emitted during a sweep.

    Each event includes:
    - type: The category of event (from EventType enum)
    - timestamp: Unix timestamp when the event occurred
    - session_id: Which conversation session this event belongs to
    - task_id: Which task produced this event (if applicable)
    - data: Event-specific payload

    Payload schemas by event type:

    SWEEP_STARTED:
        - user_id: str - The user the sweep runs for
        - task_types: list[str] - Every task type planned for the sweep

    SWEEP_PHASE_STARTED:
        - phase: int - Zero-based phase index
        - task_types: list[str] - Task types running in this phase

    SWEEP_PHASE_COMPLETE:
        - phase: int - Zero-based phase index
        - succeeded: int - Tasks that produced a payload
        - failed: int - Tasks that failed

    SWEEP_COMPLETE:
        - total_latency_ms: int - Wall clock for the whole sweep
        - filled_slots: list[str] - SweepResult slots holding a payload

    TASK_STARTED:
        - task_type: str - The task type

    TASK_COMPLETE:
        - task_type: str - The task type
        - latency_ms: int - Task latency

    TASK_FAILED:
        - task_type: str - The task type
        - error_kind: str - spawn, timeout, non_zero_exit or parse
        - error: str - Error message
        - latency_ms: int - Task latency
    """

    type: EventType
    timestamp: float = Field(default_factory=time.time)
    session_id: str
    task_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "type": "task_failed",
                    "timestamp": 1699876543.123,
                    "session_id": "sess_abc123",
                    "task_id": "emo_1a2b3c4d",
                    "data": {
                        "task_type": "emotion_classification",
                        "error_kind": "timeout",
                        "error": "timeout",
                        "latency_ms": 30002,
                    },
                }
            ]
        }
    }
