"""Recover a structured payload from unstructured engine output.

The engine may wrap its JSON answer in prose, log lines, or its own
structured-output envelope. Extraction takes the first balanced top-level
``{...}`` substring (string-literal aware) and parses it. If that substring
is not a JSON object, extraction fails; later candidates are not tried.

Known fragility: "first object wins". If a stray but valid object precedes
the real payload, the stray object is returned.
"""

import json
from collections.abc import Iterator
from typing import Any

import structlog

from unconscious.errors import PayloadParseError

logger = structlog.get_logger(__name__)

# Discriminator the engine uses for its own output envelope
ENVELOPE_TYPE = "result"


def iter_balanced_objects(text: str) -> Iterator[str]:
    """Yield balanced ``{...}`` substrings of ``text`` in order of their start.

    Braces inside JSON string literals are ignored. Once a balanced object
    is found, scanning resumes after it, so nested objects are never yielded
    separately. An opening brace that is never closed is skipped.
    """
    n = len(text)
    start = text.find("{")

    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end_found = -1

        for end in range(start, n):
            ch = text[end]

            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue

            if ch == '"':
                in_string = True
                continue

            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end_found = end
                    break

        if end_found == -1:
            start = text.find("{", start + 1)
            continue

        yield text[start : end_found + 1]
        start = text.find("{", end_found + 1)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Parse the first balanced ``{...}`` substring of ``text``.

    Args:
        text: Arbitrary text possibly containing a JSON object.

    Returns:
        The parsed object, or None when there is no candidate or the first
        candidate is not a JSON object.
    """
    candidate = next(iter_balanced_objects(text), None)
    if candidate is None:
        return None
    try:
        parsed = json.loads(candidate)
    except (ValueError, RecursionError):
        # Malformed or too deeply nested for the decoder
        return None
    return parsed if isinstance(parsed, dict) else None


def _is_envelope(obj: dict[str, Any]) -> bool:
    return obj.get("type") == ENVELOPE_TYPE and isinstance(obj.get("result"), str)


def recover_payload(output: str, task_type: str) -> dict[str, Any]:
    """Recover the task payload dict from raw engine stdout.

    Unwraps the engine's ``{"type": "result", "result": "..."}`` envelope
    when present, then makes sure the payload carries ``task_type`` as its
    discriminator.

    Args:
        output: Accumulated engine stdout.
        task_type: The originating task type.

    Returns:
        The payload dict with ``type`` set to ``task_type``.

    Raises:
        PayloadParseError: If no JSON object can be recovered.
    """
    parsed = extract_json_object(output)
    if parsed is None:
        raise PayloadParseError()

    if _is_envelope(parsed):
        if parsed.get("is_error"):
            raise PayloadParseError(f"engine reported an error: {parsed['result'][:200]}")
        parsed = extract_json_object(parsed["result"])
        if parsed is None:
            raise PayloadParseError()

    declared = parsed.get("type")
    if declared != task_type:
        if declared is not None:
            logger.warning(
                "payload_type_mismatch",
                expected=task_type,
                declared=declared,
            )
        parsed["type"] = task_type

    return parsed
