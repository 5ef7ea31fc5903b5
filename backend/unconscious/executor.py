"""Drive one TaskDescriptor through prompt rendering, the engine, and parsing.

TaskExecutor.execute always returns a TaskResult. Spawn failures, timeouts,
non-zero exits and unparsable output are all absorbed here and turned into
a failed result carrying their ErrorKind.
"""

import asyncio
import time

import structlog
from pydantic import ValidationError

from events.bus import EventBus
from events.types import AgentEvent, EventType
from metrics import TaskMetricsCollector
from unconscious.errors import PayloadParseError, UnconsciousTaskError
from unconscious.extraction import recover_payload
from unconscious.payloads import TaskPayload, validate_payload
from unconscious.process import EngineConfig, ProcessAgent, ProcessLauncher, spawn_subprocess
from unconscious.prompts import render_prompt
from unconscious.registry import AgentRegistry
from unconscious.tasks import TaskDescriptor, TaskResult

logger = structlog.get_logger(__name__)


def parse_task_output(task: TaskDescriptor, output: str) -> TaskPayload:
    """Turn raw engine stdout into the task's typed payload.

    Raises:
        PayloadParseError: If no JSON object is recoverable or the object
            does not fit the payload model.
    """
    data = recover_payload(output, task.type.value)
    try:
        return validate_payload(data)
    except ValidationError as e:
        raise PayloadParseError(
            f"payload failed validation: {e.error_count()} error(s)"
        ) from e


class TaskExecutor:
    """Runs single tasks as isolated engine processes.

    When ``max_concurrent`` is set, at most that many engine processes run
    at once; further tasks wait for a free slot before spawning. The
    per-task timeout only starts once the process is spawned.

    Attributes:
        engine: How the engine is invoked.
        registry: Registry of in-flight agents.
        event_bus: Receives task lifecycle events, if set.
        metrics: Accumulates per-type outcomes, if set.
    """

    def __init__(
        self,
        engine: EngineConfig,
        registry: AgentRegistry,
        launcher: ProcessLauncher = spawn_subprocess,
        event_bus: EventBus | None = None,
        metrics: TaskMetricsCollector | None = None,
        max_concurrent: int | None = None,
    ) -> None:
        self.engine = engine
        self.registry = registry
        self._launcher = launcher
        self.event_bus = event_bus
        self.metrics = metrics
        self._slots = asyncio.Semaphore(max_concurrent) if max_concurrent else None

    async def execute(self, task: TaskDescriptor) -> TaskResult:
        """Execute one task. Never raises for subtask failures.

        Args:
            task: The task to run.

        Returns:
            ``TaskResult.ok`` with the payload, or ``TaskResult.failed``.
        """
        start = time.monotonic()
        await self._emit(EventType.TASK_STARTED, task, {"task_type": task.type.value})

        try:
            output = await self._run_agent(task, render_prompt(task))
            payload = parse_task_output(task, output)
        except UnconsciousTaskError as e:
            latency_ms = _elapsed_ms(start)
            logger.warning(
                "task_failed",
                task_id=task.id,
                task_type=task.type.value,
                error_kind=e.kind.value,
                error=str(e)[:500],
                latency_ms=latency_ms,
            )
            result = TaskResult.failed(task, e.kind, str(e), latency_ms)
        else:
            latency_ms = _elapsed_ms(start)
            logger.info(
                "task_complete",
                task_id=task.id,
                task_type=task.type.value,
                latency_ms=latency_ms,
            )
            result = TaskResult.ok(task, payload, latency_ms)

        if self.metrics is not None:
            self.metrics.record(
                task.type.value,
                result.latency_ms,
                result.error_kind.value if result.error_kind else None,
            )

        if result.success:
            await self._emit(
                EventType.TASK_COMPLETE,
                task,
                {"task_type": task.type.value, "latency_ms": result.latency_ms},
            )
        else:
            await self._emit(
                EventType.TASK_FAILED,
                task,
                {
                    "task_type": task.type.value,
                    "error_kind": result.error_kind.value if result.error_kind else None,
                    "error": result.error,
                    "latency_ms": result.latency_ms,
                },
            )
        return result

    async def _run_agent(self, task: TaskDescriptor, prompt: str) -> str:
        agent = ProcessAgent(task, self.engine, self.registry, self._launcher)
        if self._slots is None:
            return await agent.run(prompt)
        async with self._slots:
            return await agent.run(prompt)

    async def _emit(self, event_type: EventType, task: TaskDescriptor, data: dict) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(
            AgentEvent(
                type=event_type,
                session_id=task.session_id,
                task_id=task.id,
                data=data,
            )
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
