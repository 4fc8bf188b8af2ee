"""Unit tests for TimestampStrategy and cue alignment."""

import json

import pytest

from line_translator.models.enums import StructuredMode
from line_translator.models.translation_models import TimestampEntry, TranslationOutput, WorkingEntry
from line_translator.strategies.timestamp import TIMESTAMP_SCHEMA, TimestampStrategy, align
from line_translator.validation import SchemaValidationError


def cues(*spans: tuple[float, float]) -> list[TimestampEntry]:
    return [TimestampEntry(start=start, end=end, text=f"cue {i}") for i, (start, end) in enumerate(spans)]


@pytest.fixture
def strategy(make_strategy) -> TimestampStrategy:
    return make_strategy(TimestampStrategy, structured_mode=StructuredMode.TIMESTAMP)


def test_options_overridden(strategy):
    assert strategy.options.line_matching is False
    assert strategy.options.prefix_number is False
    assert strategy.timed is True


def test_prepare_line_is_identity(strategy):
    entry = TimestampEntry(start=1, end=2, text="a\nb")
    assert strategy.prepare_line(entry, 0, 0) is entry


def test_encode(strategy):
    batch = cues((0.0, 1.5), (1.5, 3.0))
    request = strategy.encode(batch, [])

    assert json.loads(request.messages[-1].content) == {
        "inputs": [
            {"start": 0.0, "end": 1.5, "text": "cue 0"},
            {"start": 1.5, "end": 3.0, "text": "cue 1"},
        ]
    }
    assert request.response_schema == TIMESTAMP_SCHEMA
    assert request.schema_name == "translation_timestamp"


def test_moderation_text_uses_texts(strategy):
    assert strategy.moderation_text(cues((0, 1), (1, 2))) == "cue 0\n\ncue 1"


class TestDecode:

    def test_entries(self, strategy, make_response):
        payload = {"outputs": [{"start": 0, "end": 1, "text": "x"}]}
        output = strategy.decode(make_response(json.dumps(payload)), cues((0, 1)))

        assert output.content == [TimestampEntry(start=0, end=1, text="x")]

    def test_refusal_gives_empty_output(self, strategy, make_response):
        output = strategy.decode(make_response("", refusal="No."), cues((0, 1)))

        assert output.content == []
        assert output.refusal == "No."

    def test_negative_time_rejected(self, strategy, make_response):
        payload = {"outputs": [{"start": -1, "end": 1, "text": "x"}]}

        with pytest.raises(SchemaValidationError):
            strategy.decode(make_response(json.dumps(payload)), cues((0, 1)))

    def test_missing_field_rejected(self, strategy, make_response):
        payload = {"outputs": [{"start": 0, "text": "x"}]}

        with pytest.raises(SchemaValidationError):
            strategy.decode(make_response(json.dumps(payload)), cues((0, 1)))


class TestMismatch:

    def test_empty_output(self, strategy):
        assert strategy.is_mismatch(cues((0, 1)), TranslationOutput(), line_matching=False) is True

    def test_boundary_within_tolerance(self, strategy):
        output = TranslationOutput(content=[TimestampEntry(start=0, end=2.005, text="x")])
        assert strategy.is_mismatch(cues((0, 1), (1, 2)), output, line_matching=False) is False

    def test_boundary_outside_tolerance(self, strategy):
        output = TranslationOutput(content=[TimestampEntry(start=0, end=1.0, text="x")])
        assert strategy.is_mismatch(cues((0, 1), (1, 2)), output, line_matching=False) is True

    def test_split_cue_accepted(self, strategy):
        output = TranslationOutput(content=[
            TimestampEntry(start=0, end=0.5, text="x"),
            TimestampEntry(start=0.5, end=1, text="y"),
        ])
        assert strategy.is_mismatch(cues((0, 1)), output, line_matching=True) is False


class TestAlign:

    def test_exact_cue(self):
        batch = cues((0, 1), (1, 2), (2, 3))
        assert align(batch, TimestampEntry(start=1, end=2, text="x")) == (1, "cue 1")

    def test_merged_cues(self):
        batch = cues((0, 1), (1, 2), (2, 3))
        assert align(batch, TimestampEntry(start=1, end=3, text="x")) == (1, "cue 1\ncue 2")

    def test_split_cue(self):
        batch = cues((0, 2))
        assert align(batch, TimestampEntry(start=1, end=2, text="x")) == (0, "cue 0")

    def test_gap_falls_back_to_nearest_start(self):
        batch = cues((0, 1), (5, 6))
        assert align(batch, TimestampEntry(start=4, end=4.5, text="x")) == (1, "cue 1")


def test_render_context_carries_times(strategy):
    messages = strategy.render_context([
        WorkingEntry(index=0, source="a", translation="x", start=0.0, end=1.0),
    ])

    assert json.loads(messages[0].content) == {"inputs": [{"start": 0.0, "end": 1.0, "text": "a"}]}
    assert json.loads(messages[1].content) == {"outputs": [{"start": 0.0, "end": 1.0, "text": "x"}]}
