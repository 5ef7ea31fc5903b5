"""Sweep orchestration: a dependency-layered schedule of unconscious tasks.

A sweep plans one task per enabled TaskType, groups the plan into layers
with a topological sort, and runs the layers one after another. Tasks
within a layer run in parallel; a layer never starts before the previous
one has fully settled, because dependent tasks render earlier payloads into
their prompts.

With the default plan this is two phases: memory, emotion, intent
(plus optional insights and roles) first, then experience synthesis seeded
with the roles, emotion and memory payloads.

Usage:
    >>> orchestrator = SweepOrchestrator.from_settings(settings)
    >>> result = await orchestrator.process_sweep(
    ...     "user_1", "sess_abc", "Long day, the build finally passed.",
    ...     SweepOptions(include_insights=True),
    ... )
    >>> result.emotion.primary if result.emotion else None
"""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from config import Settings, settings
from events.bus import EventBus, get_event_bus
from events.types import AgentEvent, EventType
from metrics import TaskMetricsCollector
from unconscious.coordinator import ParallelCoordinator
from unconscious.executor import TaskExecutor
from unconscious.payloads import TaskPayload
from unconscious.process import EngineConfig, ProcessLauncher, spawn_subprocess
from unconscious.registry import AgentRegistry
from unconscious.tasks import (
    SWEEP_SLOTS,
    SweepOptions,
    SweepResult,
    TaskDescriptor,
    TaskType,
    find_payload,
)

logger = structlog.get_logger(__name__)

ContextBuilder = Callable[[Mapping[TaskType, TaskPayload | None]], dict[str, Any]]


@dataclass(frozen=True)
class PlannedTask:
    """One task in a sweep plan.

    Attributes:
        task_type: Which task to run.
        depends_on: Task types whose payloads must be settled first.
            Dependencies on types absent from the plan count as settled
            with no payload.
        build_context: Builds the task context from settled payloads.
    """

    task_type: TaskType
    depends_on: frozenset[TaskType] = frozenset()
    build_context: ContextBuilder | None = None


def _dump(payload: TaskPayload | None) -> dict[str, Any] | None:
    return payload.model_dump(mode="json") if payload is not None else None


def experience_context(payloads: Mapping[TaskType, TaskPayload | None]) -> dict[str, Any]:
    """Context for experience synthesis: roles, emotion and memory payloads."""
    return {
        "roles": _dump(payloads.get(TaskType.ROLE_DETECTION)),
        "emotion": _dump(payloads.get(TaskType.EMOTION_CLASSIFICATION)),
        "memory": _dump(payloads.get(TaskType.MEMORY_RETRIEVAL)),
    }


def build_sweep_plan(options: SweepOptions) -> list[PlannedTask]:
    """Plan the tasks of one sweep from its options."""
    plan = [
        PlannedTask(TaskType.MEMORY_RETRIEVAL),
        PlannedTask(TaskType.EMOTION_CLASSIFICATION),
        PlannedTask(TaskType.INTENT_RECOGNITION),
    ]
    if options.include_insights:
        plan.append(PlannedTask(TaskType.INSIGHT_GENERATION))
    if options.include_roles is not False:
        plan.append(PlannedTask(TaskType.ROLE_DETECTION))
    if options.include_experience is not False:
        plan.append(
            PlannedTask(
                TaskType.EXPERIENCE_SYNTHESIS,
                depends_on=frozenset({
                    TaskType.ROLE_DETECTION,
                    TaskType.EMOTION_CLASSIFICATION,
                    TaskType.MEMORY_RETRIEVAL,
                }),
                build_context=experience_context,
            )
        )
    return plan


def layer_plan(plan: list[PlannedTask]) -> list[list[PlannedTask]]:
    """Sort a plan into dependency layers via topological sort.

    Layer 0 has no (planned) dependencies; every task in layer N+1 depends
    only on tasks in layers 0..N. Plan order is kept within a layer.

    Args:
        plan: The planned tasks, at most one per task type.

    Returns:
        List of layers, each a list of tasks that can run in parallel.

    Raises:
        ValueError: If a task type is planned twice or the dependencies
            contain a cycle.
    """
    planned = [p.task_type for p in plan]
    if len(set(planned)) != len(planned):
        raise ValueError(f"Task type planned more than once: {planned}")

    resolved: set[TaskType] = set()
    remaining = list(plan)
    layers: list[list[PlannedTask]] = []

    while remaining:
        ready = [
            p for p in remaining
            if all(dep in resolved for dep in p.depends_on if dep in planned)
        ]
        if not ready:
            raise ValueError(
                "Circular dependency in sweep plan: "
                f"{[p.task_type.value for p in remaining]}"
            )
        layers.append(ready)
        resolved.update(p.task_type for p in ready)
        remaining = [p for p in remaining if p not in ready]

    return layers


class SweepOrchestrator:
    """Runs sweeps and single ad hoc tasks.

    Collaborators are injected; ``from_settings`` wires the default stack.

    Attributes:
        coordinator: Runs each layer in parallel.
        event_bus: Receives sweep and phase events, if set.
    """

    def __init__(
        self,
        coordinator: ParallelCoordinator,
        event_bus: EventBus | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.event_bus = event_bus

    @classmethod
    def from_settings(
        cls,
        app_settings: Settings,
        launcher: ProcessLauncher = spawn_subprocess,
        event_bus: EventBus | None = None,
        metrics: TaskMetricsCollector | None = None,
    ) -> "SweepOrchestrator":
        """Build an orchestrator and its executor stack from settings."""
        registry = AgentRegistry(max_concurrent=app_settings.max_concurrent_agents)
        executor = TaskExecutor(
            engine=EngineConfig.from_settings(app_settings),
            registry=registry,
            launcher=launcher,
            event_bus=event_bus,
            metrics=metrics,
            max_concurrent=(
                app_settings.max_concurrent_agents
                if app_settings.enforce_concurrency_limit
                else None
            ),
        )
        return cls(ParallelCoordinator(executor), event_bus=event_bus)

    @property
    def executor(self) -> TaskExecutor:
        return self.coordinator.executor

    @property
    def registry(self) -> AgentRegistry:
        return self.coordinator.executor.registry

    async def process_sweep(
        self,
        user_id: str,
        session_id: str,
        message: str,
        options: SweepOptions | None = None,
    ) -> SweepResult:
        """Run one full sweep for a conversational turn.

        A failed subtask only empties its slot; the sweep itself only raises
        on an orchestration defect.

        Args:
            user_id: User the turn belongs to.
            session_id: Conversation session id.
            message: The user message.
            options: Which optional tasks to include.

        Returns:
            SweepResult with one slot per task type.
        """
        options = options or SweepOptions()
        layers = layer_plan(build_sweep_plan(options))
        start = time.monotonic()

        logger.info(
            "sweep_started",
            user_id=user_id,
            session_id=session_id,
            phases=len(layers),
        )
        await self._emit(
            EventType.SWEEP_STARTED,
            session_id,
            {
                "user_id": user_id,
                "task_types": [p.task_type.value for layer in layers for p in layer],
            },
        )

        payloads: dict[TaskType, TaskPayload | None] = {}
        for phase, layer in enumerate(layers):
            tasks = [
                TaskDescriptor.create(
                    planned.task_type,
                    user_id,
                    session_id,
                    message,
                    context=planned.build_context(payloads) if planned.build_context else None,
                )
                for planned in layer
            ]
            await self._emit(
                EventType.SWEEP_PHASE_STARTED,
                session_id,
                {"phase": phase, "task_types": [t.type.value for t in tasks]},
            )

            results = await self.coordinator.execute_parallel(tasks)
            for planned in layer:
                payloads[planned.task_type] = find_payload(results, planned.task_type)

            succeeded = sum(1 for r in results if r.success)
            await self._emit(
                EventType.SWEEP_PHASE_COMPLETE,
                session_id,
                {"phase": phase, "succeeded": succeeded, "failed": len(results) - succeeded},
            )

        sweep = SweepResult(
            **{SWEEP_SLOTS[task_type]: payload for task_type, payload in payloads.items()},
            total_latency_ms=int((time.monotonic() - start) * 1000),
        )
        filled = [slot for slot in SWEEP_SLOTS.values() if getattr(sweep, slot) is not None]

        logger.info(
            "sweep_complete",
            user_id=user_id,
            session_id=session_id,
            filled_slots=filled,
            total_latency_ms=sweep.total_latency_ms,
        )
        await self._emit(
            EventType.SWEEP_COMPLETE,
            session_id,
            {"total_latency_ms": sweep.total_latency_ms, "filled_slots": filled},
        )
        return sweep

    async def run_single(
        self,
        task_type: TaskType,
        user_id: str,
        message: str,
        session_id: str | None = None,
    ) -> TaskPayload | None:
        """Run one ad hoc task and return its payload, or None on failure."""
        task = TaskDescriptor.create(
            TaskType(task_type),
            user_id,
            session_id or f"session_{int(time.time() * 1000)}",
            message,
        )
        result = await self.executor.execute(task)
        return result.result if result.success else None

    async def _emit(self, event_type: EventType, session_id: str, data: dict) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(
            AgentEvent(type=event_type, session_id=session_id, data=data)
        )


# ---------------------------------------------------------------------------
# Default instance
# ---------------------------------------------------------------------------

_orchestrator: SweepOrchestrator | None = None


def get_orchestrator() -> SweepOrchestrator:
    """Get the process-wide default SweepOrchestrator.

    The instance is created on first call from ``config.settings`` and
    publishes to the global event bus.
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SweepOrchestrator.from_settings(
            settings,
            event_bus=get_event_bus(),
            metrics=TaskMetricsCollector(),
        )
    return _orchestrator


def reset_orchestrator() -> None:
    """Reset the default SweepOrchestrator. Primarily useful for testing."""
    global _orchestrator
    _orchestrator = None


async def run_unconscious_task(
    task_type: TaskType,
    user_id: str,
    message: str,
) -> TaskPayload | None:
    """Run a single task on the default orchestrator.

    Returns:
        The task's payload, or None if it failed.
    """
    return await get_orchestrator().run_single(task_type, user_id, message)
