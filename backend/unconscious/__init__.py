"""Unconscious sweep: parallel background analysis of a conversational turn.

This package runs the analysis tasks of a sweep (memory retrieval, emotion
classification, intent recognition, insight generation, role detection and
experience synthesis) as isolated reasoning-engine subprocesses, in
dependency-ordered parallel layers, and assembles their structured payloads.

Key Components:
    - SweepOrchestrator: Plans and runs sweeps and single ad hoc tasks
    - ParallelCoordinator: All-settle fan-out of one layer of tasks
    - TaskExecutor: One task through prompt, engine process and parsing
    - ProcessAgent: Lifecycle of a single engine subprocess
    - AgentRegistry: In-flight agent tracking for observability
"""

from unconscious.coordinator import ParallelCoordinator
from unconscious.errors import (
    ErrorKind,
    NonZeroExitError,
    PayloadParseError,
    SpawnError,
    TaskTimeoutError,
    UnconsciousTaskError,
)
from unconscious.executor import TaskExecutor, parse_task_output
from unconscious.extraction import extract_json_object, recover_payload
from unconscious.payloads import TaskPayload, validate_payload
from unconscious.process import EngineConfig, ProcessAgent, spawn_subprocess
from unconscious.prompts import render_prompt
from unconscious.registry import AgentHandle, AgentRegistry, AgentStatus, RegistrySnapshot
from unconscious.sweep import (
    PlannedTask,
    SweepOrchestrator,
    build_sweep_plan,
    get_orchestrator,
    layer_plan,
    reset_orchestrator,
    run_unconscious_task,
)
from unconscious.tasks import (
    SweepOptions,
    SweepResult,
    TaskDescriptor,
    TaskResult,
    TaskType,
)

__all__ = [
    # Orchestration
    "SweepOrchestrator",
    "ParallelCoordinator",
    "TaskExecutor",
    "PlannedTask",
    "build_sweep_plan",
    "layer_plan",
    "get_orchestrator",
    "reset_orchestrator",
    "run_unconscious_task",
    # Processes
    "EngineConfig",
    "ProcessAgent",
    "spawn_subprocess",
    "AgentRegistry",
    "AgentHandle",
    "AgentStatus",
    "RegistrySnapshot",
    # Tasks and payloads
    "TaskType",
    "TaskDescriptor",
    "TaskResult",
    "SweepOptions",
    "SweepResult",
    "TaskPayload",
    "validate_payload",
    "render_prompt",
    "extract_json_object",
    "recover_payload",
    "parse_task_output",
    # Errors
    "ErrorKind",
    "UnconsciousTaskError",
    "SpawnError",
    "TaskTimeoutError",
    "NonZeroExitError",
    "PayloadParseError",
]
