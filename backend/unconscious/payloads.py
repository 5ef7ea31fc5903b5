"""Typed payloads returned by the engine for each task type.

Every payload carries a ``type`` discriminator equal to the TaskType that
produced it. Fields are defaulted and extra keys are kept, so a partially
filled engine answer still validates; only structurally wrong values
(e.g. a string where a number belongs) are rejected.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")


class Association(_Payload):
    """A memory or pattern surfaced for the current input.

    Attributes:
        type: RECALL, HUNCH, PULL or SIGN.
        intensity: faint, medium or strong.
        text: The association itself.
        source: graphiti, pattern or inference.
    """

    type: str = "RECALL"
    intensity: str = "medium"
    text: str = ""
    source: str = "inference"


class MemoryRetrievalPayload(_Payload):
    type: Literal["memory_retrieval"] = "memory_retrieval"
    associations: list[Association] = Field(default_factory=list)
    synthesis: str = ""


class EmotionClassificationPayload(_Payload):
    type: Literal["emotion_classification"] = "emotion_classification"
    primary: str = "neutral"
    secondary: list[str] = Field(default_factory=list)
    intensity: float = 0.0
    signals: list[str] = Field(default_factory=list)


class IntentRecognitionPayload(_Payload):
    type: Literal["intent_recognition"] = "intent_recognition"
    primary_intent: str = ""
    sub_intents: list[str] = Field(default_factory=list)
    confidence: float = 0.0
    needs: list[str] = Field(default_factory=list)


class Insight(_Payload):
    content: str = ""
    relevance: float = 0.0
    novelty: float = 0.0
    actionable: bool = False


class InsightGenerationPayload(_Payload):
    type: Literal["insight_generation"] = "insight_generation"
    insights: list[Insight] = Field(default_factory=list)
    connections: list[str] = Field(default_factory=list)


class ActiveRole(_Payload):
    role: str = ""
    confidence: float = 0.0
    markers_detected: list[str] = Field(default_factory=list)


class RoleTension(_Payload):
    between: list[str] = Field(default_factory=list)
    conflict: str = ""


class RoleDetectionPayload(_Payload):
    type: Literal["role_detection"] = "role_detection"
    active_roles: list[ActiveRole] = Field(default_factory=list)
    primary_role: str | None = None
    role_tensions: list[RoleTension] = Field(default_factory=list)
    felt_texture: str = ""


class InnerState(_Payload):
    """Sensory metaphors describing the moment."""

    weather: str = ""
    space: str = ""
    sound: str = ""


class ExperienceSynthesisPayload(_Payload):
    type: Literal["experience_synthesis"] = "experience_synthesis"
    approach: str = "minimal"
    felt_experience: str = ""
    role_coloring: str = ""
    inner_state: InnerState = Field(default_factory=InnerState)
    associations_surfaced: list[Any] = Field(default_factory=list)


TaskPayload = Annotated[
    MemoryRetrievalPayload
    | EmotionClassificationPayload
    | IntentRecognitionPayload
    | InsightGenerationPayload
    | RoleDetectionPayload
    | ExperienceSynthesisPayload,
    Field(discriminator="type"),
]

_payload_adapter: TypeAdapter[TaskPayload] = TypeAdapter(TaskPayload)


def validate_payload(data: dict[str, Any]) -> TaskPayload:
    """Validate a parsed engine object into its typed payload.

    Raises:
        pydantic.ValidationError: If the discriminator is unknown or a
            field has an incompatible value.
    """
    return _payload_adapter.validate_python(data)
