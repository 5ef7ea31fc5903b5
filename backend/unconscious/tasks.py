"""Value types flowing through a sweep.

TaskDescriptor describes one subtask, TaskResult is its uniform outcome
(either a typed payload or an error kind plus message), and SweepResult
aggregates one sweep into a slot per task type.
"""

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, Field

from unconscious.errors import ErrorKind
from unconscious.payloads import (
    EmotionClassificationPayload,
    ExperienceSynthesisPayload,
    InsightGenerationPayload,
    IntentRecognitionPayload,
    MemoryRetrievalPayload,
    RoleDetectionPayload,
    TaskPayload,
)


class TaskType(StrEnum):
    """All cognitive subtasks an engine process can run."""

    MEMORY_RETRIEVAL = "memory_retrieval"
    EMOTION_CLASSIFICATION = "emotion_classification"
    INTENT_RECOGNITION = "intent_recognition"
    INSIGHT_GENERATION = "insight_generation"
    ROLE_DETECTION = "role_detection"
    EXPERIENCE_SYNTHESIS = "experience_synthesis"

    @property
    def id_prefix(self) -> str:
        """Three-letter prefix used in task ids (e.g. ``mem``)."""
        return _ID_PREFIXES[self]


_ID_PREFIXES: dict[TaskType, str] = {
    TaskType.MEMORY_RETRIEVAL: "mem",
    TaskType.EMOTION_CLASSIFICATION: "emo",
    TaskType.INTENT_RECOGNITION: "int",
    TaskType.INSIGHT_GENERATION: "ins",
    TaskType.ROLE_DETECTION: "rol",
    TaskType.EXPERIENCE_SYNTHESIS: "exp",
}


def new_task_id(task_type: TaskType) -> str:
    """Generate a type-prefixed task id, e.g. ``emo_1a2b3c4d``."""
    return f"{task_type.id_prefix}_{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class TaskDescriptor:
    """Immutable description of one subtask.

    Attributes:
        id: Globally unique, type-prefixed task id.
        type: Which subtask to run.
        user_id: User the conversational turn belongs to.
        session_id: Conversation session id.
        input: The user message being processed.
        context: Optional JSON-serializable context rendered into the prompt.
            Read-only and left out of the hash, so descriptors stay hashable.
    """

    id: str
    type: TaskType
    user_id: str
    session_id: str
    input: str
    context: Mapping[str, Any] | None = field(default=None, hash=False)

    @classmethod
    def create(
        cls,
        task_type: TaskType,
        user_id: str,
        session_id: str,
        message: str,
        context: Mapping[str, Any] | None = None,
    ) -> "TaskDescriptor":
        """Build a descriptor with a freshly generated id."""
        frozen_context = MappingProxyType(dict(context)) if context is not None else None
        return cls(
            id=new_task_id(task_type),
            type=TaskType(task_type),
            user_id=user_id,
            session_id=session_id,
            input=message,
            context=frozen_context,
        )


@dataclass
class TaskResult:
    """Outcome of one task: ``ok`` with a payload or ``failed`` with a kind."""

    task_id: str
    task_type: TaskType
    success: bool
    latency_ms: int
    result: TaskPayload | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(
        cls, task: TaskDescriptor, payload: TaskPayload, latency_ms: int
    ) -> "TaskResult":
        return cls(
            task_id=task.id,
            task_type=task.type,
            success=True,
            latency_ms=latency_ms,
            result=payload,
        )

    @classmethod
    def failed(
        cls,
        task: TaskDescriptor,
        kind: ErrorKind,
        error: str,
        latency_ms: int,
    ) -> "TaskResult":
        return cls(
            task_id=task.id,
            task_type=task.type,
            success=False,
            latency_ms=latency_ms,
            error=error,
            error_kind=kind,
        )


@dataclass(frozen=True)
class SweepOptions:
    """Which optional tasks a sweep runs."""

    include_insights: bool = False
    include_roles: bool = True
    include_experience: bool = True


class SweepResult(BaseModel):
    """Composite output of one sweep.

    A slot is None when its task was skipped or failed; callers should omit
    that context section rather than treat it as fatal.
    """

    memory: MemoryRetrievalPayload | None = None
    emotion: EmotionClassificationPayload | None = None
    intent: IntentRecognitionPayload | None = None
    insights: InsightGenerationPayload | None = None
    roles: RoleDetectionPayload | None = None
    experience: ExperienceSynthesisPayload | None = None
    total_latency_ms: int = Field(default=0, ge=0)


# SweepResult field holding each task type's payload
SWEEP_SLOTS: dict[TaskType, str] = {
    TaskType.MEMORY_RETRIEVAL: "memory",
    TaskType.EMOTION_CLASSIFICATION: "emotion",
    TaskType.INTENT_RECOGNITION: "intent",
    TaskType.INSIGHT_GENERATION: "insights",
    TaskType.ROLE_DETECTION: "roles",
    TaskType.EXPERIENCE_SYNTHESIS: "experience",
}


def find_payload(results: list[TaskResult], task_type: TaskType) -> TaskPayload | None:
    """Return the first successful payload whose discriminator matches.

    Lookup is by content, not position, so reordered or missing results
    are tolerated.
    """
    for result in results:
        if result.success and result.result is not None and result.result.type == task_type:
            return result.result
    return None
