"""Tests for unconscious/extraction.py -- payload recovery from engine stdout.

Covers:
- iter_balanced_objects: string-aware balanced-brace scanning
- extract_json_object: only the first balanced candidate is parsed
- recover_payload: envelope unwrapping and discriminator injection
"""

import json

import pytest

from unconscious.errors import ErrorKind, PayloadParseError
from unconscious.extraction import (
    extract_json_object,
    iter_balanced_objects,
    recover_payload,
)

# =========================================================================
# iter_balanced_objects
# =========================================================================


class TestIterBalancedObjects:
    """Balanced top-level candidates, in order."""

    def test_no_braces_yields_nothing(self) -> None:
        assert list(iter_balanced_objects("plain text only")) == []

    def test_nested_object_yielded_once(self) -> None:
        text = 'x {"a": {"b": 1}} y'
        assert list(iter_balanced_objects(text)) == ['{"a": {"b": 1}}']

    def test_multiple_objects_in_order(self) -> None:
        text = '{"a": 1} and then {"b": 2}'
        assert list(iter_balanced_objects(text)) == ['{"a": 1}', '{"b": 2}']

    def test_braces_inside_strings_ignored(self) -> None:
        text = '{"text": "a } inside and a { too"}'
        assert list(iter_balanced_objects(text)) == [text]

    def test_escaped_quote_inside_string(self) -> None:
        text = r'{"text": "she said \"}\" loudly"}'
        assert list(iter_balanced_objects(text)) == [text]

    def test_unclosed_brace_skipped(self) -> None:
        text = '{ never closed ... {"ok": true}'
        assert list(iter_balanced_objects(text)) == ['{"ok": true}']


# =========================================================================
# extract_json_object
# =========================================================================


class TestExtractJsonObject:
    """Only the first balanced candidate is considered."""

    def test_object_surrounded_by_noise(self) -> None:
        output = 'Sure! Here you go:\n{"type":"emotion_classification","primary":"joy"}\nThanks'
        assert extract_json_object(output) == {
            "type": "emotion_classification",
            "primary": "joy",
        }

    def test_no_json_returns_none(self) -> None:
        assert extract_json_object("I could not decide.") is None

    def test_unparsable_first_candidate_fails(self) -> None:
        output = "{not json} then {\"primary\": \"fear\"}"
        assert extract_json_object(output) is None

    def test_too_deeply_nested_candidate_fails(self) -> None:
        depth = 100_000
        assert extract_json_object('{"a": ' + "[" * depth + "]" * depth + "}") is None

    def test_stray_valid_object_wins_over_real_payload(self) -> None:
        # Known fragility: a valid object before the payload is taken instead
        output = (
            'Thinking about {"step": 1} first...\n'
            '{"type": "emotion_classification", "primary": "sadness"}'
        )
        assert extract_json_object(output) == {"step": 1}


# =========================================================================
# recover_payload
# =========================================================================


class TestRecoverPayload:
    """Envelope handling and discriminator injection."""

    def test_missing_type_is_injected(self) -> None:
        data = recover_payload('{"primary": "joy"}', "emotion_classification")
        assert data["type"] == "emotion_classification"
        assert data["primary"] == "joy"

    def test_mismatched_type_is_overwritten(self) -> None:
        data = recover_payload('{"type": "memory_retrieval"}', "intent_recognition")
        assert data["type"] == "intent_recognition"

    def test_no_json_raises_parse_error(self) -> None:
        with pytest.raises(PayloadParseError) as exc_info:
            recover_payload("no braces at all", "emotion_classification")
        assert exc_info.value.kind == ErrorKind.PARSE
        assert str(exc_info.value) == "no parsable JSON"

    def test_unparsable_first_candidate_raises_parse_error(self) -> None:
        output = '{oops} {"type": "emotion_classification", "primary": "joy"}'
        with pytest.raises(PayloadParseError, match="no parsable JSON"):
            recover_payload(output, "emotion_classification")

    def test_envelope_is_unwrapped(self) -> None:
        inner = 'Here is the analysis:\n{"type": "intent_recognition", "primary_intent": "vent"}'
        output = json.dumps({"type": "result", "subtype": "success", "result": inner})
        data = recover_payload(output, "intent_recognition")
        assert data == {"type": "intent_recognition", "primary_intent": "vent"}

    def test_envelope_without_inner_json_raises(self) -> None:
        output = json.dumps({"type": "result", "result": "I cannot help with that."})
        with pytest.raises(PayloadParseError):
            recover_payload(output, "intent_recognition")

    def test_envelope_with_too_deeply_nested_inner_raises(self) -> None:
        depth = 100_000
        inner = '{"a": ' + "[" * depth + "]" * depth + "}"
        output = json.dumps({"type": "result", "result": inner})
        with pytest.raises(PayloadParseError):
            recover_payload(output, "intent_recognition")

    def test_error_envelope_raises(self) -> None:
        output = json.dumps({"type": "result", "is_error": True, "result": "rate limited"})
        with pytest.raises(PayloadParseError, match="engine reported an error"):
            recover_payload(output, "emotion_classification")

    def test_non_string_result_is_not_an_envelope(self) -> None:
        output = '{"type": "result", "result": {"primary": "joy"}}'
        data = recover_payload(output, "emotion_classification")
        assert data["type"] == "emotion_classification"
        assert data["result"] == {"primary": "joy"}
