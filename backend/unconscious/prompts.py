"""Prompt templates for every unconscious task type.

Each template is rendered with the task's user id, session id, input and
serialized context. The engine's output contract lives in the bundled
cortex directory; templates that need a specific shape spell it out inline.
"""

import json
from typing import Any

from unconscious.tasks import TaskDescriptor, TaskType

NO_CONTEXT = "none"

_HEADER = """\
Task: {title}
User ID: {user_id}
Session ID: {session_id}
Input: "{input}"
"""

_CONTEXT_LINE = "Context: {context}\n"

_FOOTER = "Respond with structured JSON per your CLAUDE.md instructions."

MEMORY_RETRIEVAL_PROMPT = """\
Search your memory for relevant associations to this input. Include:
- Past conversations or topics related to this
- Emotional patterns you've observed
- Commitments or promises that might be relevant
- Connections to the user's goals or projects
"""

EMOTION_CLASSIFICATION_PROMPT = """\
Analyze the emotional content of this input. Detect:
- Primary emotion (joy, sadness, anger, fear, surprise, disgust, neutral)
- Secondary/nuanced emotions
- Emotional intensity (0-1)
- Specific signals that led to your classification
"""

INTENT_RECOGNITION_PROMPT = """\
Identify what the user is trying to accomplish. Consider:
- Explicit stated intent
- Implicit/unstated needs
- Potential sub-intents or secondary goals
- What they might need but haven't articulated
"""

INSIGHT_GENERATION_PROMPT = """\
Generate insights that could enrich the response to this input. Look for:
- Non-obvious connections
- Reframings that might help
- Patterns across time
- Actionable suggestions
"""

ROLE_DETECTION_PROMPT = """\
Detect which of the user's life roles are active based on this input.
Use the roles recorded in your memory for this user.

For each detected role, identify:
1. Confidence (0-1) based on markers present
2. Which markers triggered detection
3. Any role tensions (conflicts between active roles)
4. The "felt texture" this combination creates

Respond with JSON:
{{
  "type": "role_detection",
  "active_roles": [{{"role": "...", "confidence": 0.X, "markers_detected": [...]}}],
  "primary_role": "...",
  "role_tensions": [{{"between": ["A", "B"], "conflict": "..."}}],
  "felt_texture": "..."
}}"""

EXPERIENCE_SYNTHESIS_PROMPT = """\
You are generating the FELT EXPERIENCE that will color the conscious response.
This is not analysis - this is the texture of how this moment feels.

Based on the context (roles active, emotions detected, memories surfacing), generate:

1. **Approach** (pick one based on context):
   - "minimal": Light touch, let the model speak naturally
   - "thinking_first": Process deeply before articulating
   - "sensory_grounding": Use weather/space/sound metaphors

2. **Felt Experience** (2-4 sentences):
   What is the emotional weather of this moment?

3. **Role Coloring**:
   How do the active roles shape what this moment means?

4. **Inner State** (sensory metaphors):
   - weather: The temperature and atmosphere
   - space: The physical feeling (cramped, expansive, etc.)
   - sound: What would this moment sound like?

Respond with JSON:
{{
  "type": "experience_synthesis",
  "approach": "...",
  "felt_experience": "...",
  "role_coloring": "...",
  "inner_state": {{"weather": "...", "space": "...", "sound": "..."}},
  "associations_surfaced": [...]
}}"""


# (title, body, includes context line, ends with the cortex footer)
_TEMPLATES: dict[TaskType, tuple[str, str, bool, bool]] = {
    TaskType.MEMORY_RETRIEVAL: ("Memory Retrieval", MEMORY_RETRIEVAL_PROMPT, True, True),
    TaskType.EMOTION_CLASSIFICATION: (
        "Emotion Classification", EMOTION_CLASSIFICATION_PROMPT, False, True,
    ),
    TaskType.INTENT_RECOGNITION: ("Intent Recognition", INTENT_RECOGNITION_PROMPT, False, True),
    TaskType.INSIGHT_GENERATION: ("Insight Generation", INSIGHT_GENERATION_PROMPT, True, True),
    TaskType.ROLE_DETECTION: ("Role Detection", ROLE_DETECTION_PROMPT, True, False),
    TaskType.EXPERIENCE_SYNTHESIS: (
        "Experience Synthesis", EXPERIENCE_SYNTHESIS_PROMPT, True, False,
    ),
}


def serialize_context(context: Any) -> str:
    """Serialize a task context for prompt interpolation.

    Returns:
        Compact JSON, or the literal ``none`` when there is no context.
    """
    if context is None:
        return NO_CONTEXT
    return json.dumps(dict(context), default=str, ensure_ascii=False)


def render_prompt(task: TaskDescriptor) -> str:
    """Render the prompt for a task from its type's static template.

    Args:
        task: The task to render.

    Returns:
        The prompt text passed to the engine.
    """
    title, body, with_context, with_footer = _TEMPLATES[task.type]
    header = _HEADER.format(
        title=title,
        user_id=task.user_id,
        session_id=task.session_id,
        input=task.input,
    )
    if with_context:
        header += _CONTEXT_LINE.format(context=serialize_context(task.context))
    sections = [header, body.format()]
    if with_footer:
        sections.append(_FOOTER)
    return "\n".join(sections)
