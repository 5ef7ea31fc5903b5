"""Shared test fixtures for backend tests.

Provides a fake engine process and launcher, a fresh EventBus, and
pre-wired registries and executors so tests never spawn the real engine.
"""

import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import pytest

# Ensure the backend package root is on sys.path so that absolute imports
# like ``from unconscious.tasks import ...`` resolve correctly when running
# pytest from the repository root.
_backend_root = str(
    __import__("pathlib").Path(__file__).resolve().parent.parent
)
if _backend_root not in sys.path:
    sys.path.insert(0, _backend_root)

from events.bus import EventBus, reset_event_bus  # noqa: E402
from events.types import AgentEvent  # noqa: E402
from metrics import TaskMetricsCollector  # noqa: E402
from unconscious.executor import TaskExecutor  # noqa: E402
from unconscious.process import EngineConfig  # noqa: E402
from unconscious.registry import AgentRegistry  # noqa: E402
from unconscious.tasks import TaskDescriptor, TaskType  # noqa: E402

# ---------------------------------------------------------------------------
# Event Bus
# ---------------------------------------------------------------------------


@pytest.fixture()
def event_bus() -> EventBus:
    """Return a fresh EventBus instance for each test."""
    reset_event_bus()
    bus = EventBus()
    return bus


def drain(queue: asyncio.Queue[AgentEvent]) -> list[AgentEvent]:
    """Pop every event already sitting in a subscriber queue."""
    events: list[AgentEvent] = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


# ---------------------------------------------------------------------------
# Fake engine process
# ---------------------------------------------------------------------------


class FakeProcess:
    """Stands in for asyncio.subprocess.Process.

    Args:
        stdout: Text written to stdout.
        stderr: Text written to stderr.
        returncode: Exit code reported once the process exits.
        delay: Seconds ``communicate`` takes before the process exits.
        hang: If True, the process never exits on its own.
        ignore_terminate: If True, SIGTERM is ignored and only kill works.
        tracker: Launcher notified when the process starts and stops running.
    """

    _next_pid = 40000

    def __init__(
        self,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        delay: float = 0.0,
        hang: bool = False,
        ignore_terminate: bool = False,
        tracker: "FakeLauncher | None" = None,
    ) -> None:
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.returncode: int | None = None
        self._stdout = stdout
        self._stderr = stderr
        self._exit_code = returncode
        self._delay = delay
        self._hang = hang
        self._ignore_terminate = ignore_terminate
        self._tracker = tracker
        self._exited = asyncio.Event()
        self.terminated = False
        self.killed = False

    async def communicate(self, input: bytes | None = None) -> tuple[bytes, bytes]:
        if self._tracker is not None:
            self._tracker.process_started()
        try:
            if self._hang:
                await self._exited.wait()
            elif self._delay:
                await asyncio.sleep(self._delay)
        finally:
            if self._tracker is not None:
                self._tracker.process_stopped()
        if self.returncode is None:
            self.returncode = self._exit_code
        self._exited.set()
        return self._stdout.encode(), self._stderr.encode()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        if not self._ignore_terminate:
            self.returncode = -15
            self._exited.set()

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9
        self._exited.set()


_TITLE_TO_TYPE = {
    "Memory Retrieval": TaskType.MEMORY_RETRIEVAL,
    "Emotion Classification": TaskType.EMOTION_CLASSIFICATION,
    "Intent Recognition": TaskType.INTENT_RECOGNITION,
    "Insight Generation": TaskType.INSIGHT_GENERATION,
    "Role Detection": TaskType.ROLE_DETECTION,
    "Experience Synthesis": TaskType.EXPERIENCE_SYNTHESIS,
}


def task_type_of(prompt: str) -> TaskType:
    """Recover the task type from a rendered prompt's ``Task:`` line."""
    title = prompt.splitlines()[0].removeprefix("Task: ").strip()
    return _TITLE_TO_TYPE[title]


def payload_json(task_type: TaskType, **fields: Any) -> str:
    """Serialize a payload object the way the engine would print it."""
    return json.dumps({"type": task_type.value, **fields})


@dataclass
class LaunchCall:
    argv: list[str]
    env: dict[str, str]
    task_type: TaskType
    prompt: str


class FakeLauncher:
    """Records launches and hands back FakeProcess instances.

    ``behaviors`` maps a task type to FakeProcess keyword arguments, or to
    an exception the launch raises. Types without an entry print a minimal
    valid payload and exit 0.
    """

    def __init__(
        self,
        behaviors: Mapping[TaskType, dict[str, Any] | BaseException] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.behaviors = dict(behaviors or {})
        self.delay = delay
        self.calls: list[LaunchCall] = []
        self.processes: list[FakeProcess] = []
        self.running = 0
        self.max_running = 0

    async def __call__(self, argv: Sequence[str], env: Mapping[str, str]) -> FakeProcess:
        prompt = argv[-1]
        task_type = task_type_of(prompt)
        self.calls.append(LaunchCall(list(argv), dict(env), task_type, prompt))

        behavior = self.behaviors.get(task_type)
        if isinstance(behavior, BaseException):
            raise behavior
        kwargs: dict[str, Any] = {"stdout": payload_json(task_type), "delay": self.delay}
        kwargs.update(behavior or {})
        process = FakeProcess(tracker=self, **kwargs)
        self.processes.append(process)
        return process

    def process_started(self) -> None:
        self.running += 1
        self.max_running = max(self.max_running, self.running)

    def process_stopped(self) -> None:
        self.running -= 1

    def launched_types(self) -> list[TaskType]:
        return [call.task_type for call in self.calls]

    def prompt_for(self, task_type: TaskType) -> str:
        return next(call.prompt for call in self.calls if call.task_type == task_type)


# ---------------------------------------------------------------------------
# Pre-wired collaborators
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> EngineConfig:
    """Engine config with short limits so timeout tests stay fast."""
    return EngineConfig(
        command="claude",
        model="test-model",
        timeout_seconds=0.5,
        terminate_grace_seconds=0.1,
    )


@pytest.fixture()
def registry() -> AgentRegistry:
    return AgentRegistry(max_concurrent=4)


@pytest.fixture()
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture()
def metrics() -> TaskMetricsCollector:
    return TaskMetricsCollector()


@pytest.fixture()
def executor(
    engine: EngineConfig,
    registry: AgentRegistry,
    launcher: FakeLauncher,
    event_bus: EventBus,
    metrics: TaskMetricsCollector,
) -> TaskExecutor:
    return TaskExecutor(
        engine=engine,
        registry=registry,
        launcher=launcher,
        event_bus=event_bus,
        metrics=metrics,
    )


def make_task(
    task_type: TaskType = TaskType.EMOTION_CLASSIFICATION,
    message: str = "I finally shipped it and I'm wiped out.",
    context: Mapping[str, Any] | None = None,
    session_id: str = "sess_test",
) -> TaskDescriptor:
    """Create a TaskDescriptor with sensible defaults."""
    return TaskDescriptor.create(task_type, "user_1", session_id, message, context=context)
