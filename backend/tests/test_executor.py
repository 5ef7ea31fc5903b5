"""Tests for unconscious/executor.py -- one task end to end.

Covers:
- success path: prompt rendered, payload parsed and typed
- every failure kind absorbed into a failed TaskResult
- task lifecycle events and metrics
- the optional concurrency bound
"""

import asyncio
import json

import pytest

from events.bus import EventBus
from events.types import EventType
from metrics import TaskMetricsCollector
from tests.conftest import FakeLauncher, drain, make_task, payload_json
from unconscious.errors import ErrorKind, PayloadParseError
from unconscious.executor import TaskExecutor, parse_task_output
from unconscious.payloads import EmotionClassificationPayload, RoleDetectionPayload
from unconscious.process import EngineConfig, wait_for_reapers
from unconscious.registry import AgentRegistry
from unconscious.tasks import TaskType

# =========================================================================
# parse_task_output
# =========================================================================


class TestParseTaskOutput:
    def test_payload_typed_by_task(self) -> None:
        task = make_task(TaskType.EMOTION_CLASSIFICATION)
        payload = parse_task_output(task, 'noise {"primary": "joy", "intensity": 0.8} noise')
        assert isinstance(payload, EmotionClassificationPayload)
        assert payload.type == "emotion_classification"
        assert payload.primary == "joy"
        assert payload.intensity == 0.8

    def test_extra_fields_kept(self) -> None:
        task = make_task(TaskType.EMOTION_CLASSIFICATION)
        payload = parse_task_output(task, '{"primary": "joy", "valence": "positive"}')
        assert payload.model_dump()["valence"] == "positive"

    def test_wrong_field_shape_is_parse_error(self) -> None:
        task = make_task(TaskType.EMOTION_CLASSIFICATION)
        with pytest.raises(PayloadParseError, match="failed validation"):
            parse_task_output(task, '{"intensity": "very"}')

    def test_null_primary_role_allowed(self) -> None:
        task = make_task(TaskType.ROLE_DETECTION)
        payload = parse_task_output(task, '{"active_roles": [], "primary_role": null}')
        assert isinstance(payload, RoleDetectionPayload)
        assert payload.primary_role is None


# =========================================================================
# execute: success and failure kinds
# =========================================================================


class TestExecute:
    async def test_success(self, executor: TaskExecutor, launcher: FakeLauncher) -> None:
        launcher.behaviors[TaskType.EMOTION_CLASSIFICATION] = {
            "stdout": payload_json(TaskType.EMOTION_CLASSIFICATION, primary="surprise"),
        }
        task = make_task(TaskType.EMOTION_CLASSIFICATION)

        result = await executor.execute(task)

        assert result.success
        assert result.task_id == task.id
        assert result.task_type == TaskType.EMOTION_CLASSIFICATION
        assert result.result is not None
        assert result.result.primary == "surprise"
        assert result.error is None and result.error_kind is None
        assert result.latency_ms >= 0

    async def test_prompt_passed_as_last_argument(
        self, executor: TaskExecutor, launcher: FakeLauncher
    ) -> None:
        await executor.execute(make_task(TaskType.INTENT_RECOGNITION, message="where to?"))
        call = launcher.calls[0]
        assert call.argv[-2] == "-p"
        assert 'Input: "where to?"' in call.prompt

    async def test_envelope_output(self, executor: TaskExecutor, launcher: FakeLauncher) -> None:
        envelope = json.dumps({
            "type": "result",
            "result": 'Analysis:\n{"primary_intent": "plan a trip", "confidence": 0.7}',
        })
        launcher.behaviors[TaskType.INTENT_RECOGNITION] = {"stdout": envelope}

        result = await executor.execute(make_task(TaskType.INTENT_RECOGNITION))

        assert result.success
        assert result.result.primary_intent == "plan a trip"

    async def test_spawn_failure(self, executor: TaskExecutor, launcher: FakeLauncher) -> None:
        launcher.behaviors[TaskType.EMOTION_CLASSIFICATION] = FileNotFoundError("claude")
        result = await executor.execute(make_task())
        assert not result.success
        assert result.error_kind == ErrorKind.SPAWN
        assert result.result is None

    async def test_timeout(
        self, executor: TaskExecutor, launcher: FakeLauncher, registry: AgentRegistry
    ) -> None:
        launcher.behaviors[TaskType.EMOTION_CLASSIFICATION] = {"hang": True}
        result = await executor.execute(make_task())
        assert not result.success
        assert result.error_kind == ErrorKind.TIMEOUT
        assert result.error == "timeout"
        assert launcher.processes[0].terminated
        assert registry.active_count == 0
        await wait_for_reapers()

    async def test_non_zero_exit(self, executor: TaskExecutor, launcher: FakeLauncher) -> None:
        launcher.behaviors[TaskType.EMOTION_CLASSIFICATION] = {
            "returncode": 1,
            "stderr": "auth failed\n",
        }
        result = await executor.execute(make_task())
        assert not result.success
        assert result.error_kind == ErrorKind.NON_ZERO_EXIT
        assert result.error == "1: auth failed"

    async def test_unparsable_output(self, executor: TaskExecutor, launcher: FakeLauncher) -> None:
        launcher.behaviors[TaskType.EMOTION_CLASSIFICATION] = {"stdout": "I feel nothing."}
        result = await executor.execute(make_task())
        assert not result.success
        assert result.error_kind == ErrorKind.PARSE
        assert result.error == "no parsable JSON"

    async def test_deeply_nested_output_is_parse_error(
        self, executor: TaskExecutor, launcher: FakeLauncher, registry: AgentRegistry
    ) -> None:
        depth = 100_000
        launcher.behaviors[TaskType.EMOTION_CLASSIFICATION] = {
            "stdout": '{"a": ' + "[" * depth + "]" * depth + "}",
        }
        result = await executor.execute(make_task())
        assert not result.success
        assert result.error_kind == ErrorKind.PARSE
        assert result.error == "no parsable JSON"
        assert registry.active_count == 0

    async def test_registry_empty_after_every_outcome(
        self, executor: TaskExecutor, launcher: FakeLauncher, registry: AgentRegistry
    ) -> None:
        launcher.behaviors.update({
            TaskType.MEMORY_RETRIEVAL: {"returncode": 2},
            TaskType.EMOTION_CLASSIFICATION: {"stdout": "garbage"},
            TaskType.INTENT_RECOGNITION: OSError("exec format error"),
        })
        for task_type in (
            TaskType.MEMORY_RETRIEVAL,
            TaskType.EMOTION_CLASSIFICATION,
            TaskType.INTENT_RECOGNITION,
            TaskType.ROLE_DETECTION,
        ):
            await executor.execute(make_task(task_type))
        assert registry.active_count == 0


# =========================================================================
# Events and metrics
# =========================================================================


class TestObservability:
    async def test_success_events(self, executor: TaskExecutor, event_bus: EventBus) -> None:
        queue = event_bus.subscribe("sess_test")
        task = make_task()

        await executor.execute(task)

        events = drain(queue)
        assert [e.type for e in events] == [EventType.TASK_STARTED, EventType.TASK_COMPLETE]
        assert all(e.task_id == task.id for e in events)
        assert events[1].data["task_type"] == "emotion_classification"

    async def test_failure_event_carries_kind(
        self, executor: TaskExecutor, launcher: FakeLauncher, event_bus: EventBus
    ) -> None:
        launcher.behaviors[TaskType.EMOTION_CLASSIFICATION] = {"returncode": 1, "stderr": "x"}
        queue = event_bus.subscribe("sess_test")

        await executor.execute(make_task())

        failed = drain(queue)[-1]
        assert failed.type == EventType.TASK_FAILED
        assert failed.data["error_kind"] == "non_zero_exit"
        assert failed.data["error"] == "1: x"

    async def test_metrics_recorded(
        self,
        executor: TaskExecutor,
        launcher: FakeLauncher,
        metrics: TaskMetricsCollector,
    ) -> None:
        launcher.behaviors[TaskType.MEMORY_RETRIEVAL] = {"stdout": "nope"}
        await executor.execute(make_task(TaskType.EMOTION_CLASSIFICATION))
        await executor.execute(make_task(TaskType.MEMORY_RETRIEVAL))

        snapshot = metrics.snapshot()
        assert snapshot["emotion_classification"].succeeded == 1
        assert snapshot["memory_retrieval"].runs == 1
        assert snapshot["memory_retrieval"].failures == {"parse": 1}

    async def test_works_without_bus_or_metrics(
        self, engine: EngineConfig, registry: AgentRegistry
    ) -> None:
        executor = TaskExecutor(engine, registry, launcher=FakeLauncher())
        result = await executor.execute(make_task())
        assert result.success


# =========================================================================
# Concurrency bound
# =========================================================================


class TestConcurrencyBound:
    async def test_limit_caps_running_processes(
        self, engine: EngineConfig, registry: AgentRegistry
    ) -> None:
        launcher = FakeLauncher(delay=0.05)
        executor = TaskExecutor(engine, registry, launcher=launcher, max_concurrent=2)

        results = await asyncio.gather(*(executor.execute(make_task()) for _ in range(6)))

        assert all(r.success for r in results)
        assert launcher.max_running == 2

    async def test_no_limit_spawns_everything(
        self, engine: EngineConfig, registry: AgentRegistry
    ) -> None:
        launcher = FakeLauncher(delay=0.05)
        executor = TaskExecutor(engine, registry, launcher=launcher)

        await asyncio.gather(*(executor.execute(make_task()) for _ in range(6)))

        assert launcher.max_running == 6
