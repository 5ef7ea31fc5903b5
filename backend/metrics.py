"""In-memory outcome metrics for unconscious tasks.

This module provides the TaskMetricsCollector class that accumulates, per
task type, how many tasks ran, how they failed, and how long they took.
It backs the ``/api/agents`` observability endpoint.

Usage:
    >>> from metrics import TaskMetricsCollector
    >>> collector = TaskMetricsCollector()
    >>> collector.record("emotion_classification", latency_ms=840)
    >>> collector.record("memory_retrieval", latency_ms=30001, error_kind="timeout")
    >>> collector.snapshot()["memory_retrieval"].to_dict()["failures"]
    {'timeout': 1}
"""

import threading
from collections import Counter
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class TaskTypeMetrics:
    """Accumulated outcomes for a single task type.

    Attributes:
        runs: Number of finished tasks of this type.
        succeeded: Tasks that produced a payload.
        failures: Failed task count per error kind.
        total_latency_ms: Sum of latencies over all runs.
        max_latency_ms: Slowest run seen.
    """

    runs: int = 0
    succeeded: int = 0
    failures: Counter[str] = field(default_factory=Counter)
    total_latency_ms: int = 0
    max_latency_ms: int = 0

    @property
    def mean_latency_ms(self) -> float:
        return self.total_latency_ms / self.runs if self.runs else 0.0

    def to_dict(self) -> dict[str, object]:
        """Convert to a plain dict suitable for an API response."""
        return {
            "runs": self.runs,
            "succeeded": self.succeeded,
            "failures": dict(self.failures),
            "mean_latency_ms": round(self.mean_latency_ms, 1),
            "max_latency_ms": self.max_latency_ms,
        }


class TaskMetricsCollector:
    """Thread-safe collector of per-task-type outcome counters."""

    def __init__(self) -> None:
        """Initialize an empty metrics collector."""
        self._by_type: dict[str, TaskTypeMetrics] = {}
        self._lock = threading.Lock()
        logger.info("metrics_collector_initialized")

    def record(self, task_type: str, latency_ms: int, error_kind: str | None = None) -> None:
        """Record one finished task.

        Args:
            task_type: The task type that finished.
            latency_ms: Task latency in milliseconds.
            error_kind: Failure class, or None for a success.
        """
        with self._lock:
            data = self._by_type.setdefault(task_type, TaskTypeMetrics())
            data.runs += 1
            data.total_latency_ms += latency_ms
            data.max_latency_ms = max(data.max_latency_ms, latency_ms)
            if error_kind is None:
                data.succeeded += 1
            else:
                data.failures[error_kind] += 1

    def snapshot(self) -> dict[str, TaskTypeMetrics]:
        """Return a copy of the current per-type metrics."""
        with self._lock:
            return {
                task_type: TaskTypeMetrics(
                    runs=m.runs,
                    succeeded=m.succeeded,
                    failures=Counter(m.failures),
                    total_latency_ms=m.total_latency_ms,
                    max_latency_ms=m.max_latency_ms,
                )
                for task_type, m in self._by_type.items()
            }

    def reset(self) -> None:
        with self._lock:
            self._by_type.clear()
