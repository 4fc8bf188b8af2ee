"""
Timestamp strategy.

Sends timed cues as `{"inputs": [{start, end, text}]}` and receives
`{"outputs": [{start, end, text}]}`. The model may merge or split cues, so
output counts are not compared; a batch is accepted when its trailing end
time matches the input's within TOLERANCE_SECONDS.
"""

import json
from typing import Optional, Sequence

import pydantic
import structlog

from line_translator.llm.text_utils import seconds_to_timestamp
from line_translator.models.enums import MessageRole
from line_translator.models.llm_models import ChatMessage, CompletionRequest, CompletionResponse
from line_translator.models.translation_models import TimestampEntry, TranslationOutput, WorkingEntry
from line_translator.strategies.base import StructuredOutputStrategy
from line_translator.validation import SchemaValidationError, validate_structured

logger = structlog.get_logger(__name__)

SCHEMA_NAME = "translation_timestamp"
TOLERANCE_SECONDS = 0.011  # ~11ms for floating-point rounding

_ENTRY_SCHEMA = {
    "type": "object",
    "properties": {
        "start": {"type": "number"},
        "end": {"type": "number"},
        "text": {"type": "string"},
    },
    "required": ["start", "end", "text"],
    "additionalProperties": False,
}

TIMESTAMP_SCHEMA = {
    "type": "object",
    "properties": {
        "outputs": {"type": "array", "items": _ENTRY_SCHEMA},
    },
    "required": ["outputs"],
    "additionalProperties": False,
}


def _payload(entries: Sequence[TimestampEntry]) -> list[dict]:
    return [entry.model_dump() for entry in entries]


def align(batch: Sequence[TimestampEntry], output: TimestampEntry) -> tuple[int, str]:
    """
    Find the input cues an output cue covers.

    Returns:
        (position of the first covered cue in the batch, covered source text)
    """
    covered = [
        i for i, entry in enumerate(batch)
        if entry.start < output.end - TOLERANCE_SECONDS and entry.end > output.start + TOLERANCE_SECONDS
    ]
    if not covered:
        nearest = min(range(len(batch)), key=lambda i: abs(batch[i].start - output.start))
        covered = [nearest]
    return covered[0], "\n".join(batch[i].text for i in covered)


class TimestampStrategy(StructuredOutputStrategy):
    """Timed cues in, timed cues out."""

    name = "timestamp"
    timed = True

    def prepare_line(self, line: TimestampEntry, index: int, offset: int) -> TimestampEntry:
        return line

    def moderation_text(self, batch: Sequence[TimestampEntry]) -> str:
        return "\n\n".join(entry.text for entry in batch)

    def encode(
        self,
        batch: Sequence[TimestampEntry],
        context: list[ChatMessage],
        model: Optional[str] = None,
    ) -> CompletionRequest:
        payload = _payload(batch)
        messages = self.builder.build_messages(context, _dumps({"inputs": payload}))
        return self.builder.build_request(
            messages,
            model=model,
            max_tokens=self.estimate_max_tokens([entry.text for entry in batch]),
            response_schema=TIMESTAMP_SCHEMA,
            schema_name=SCHEMA_NAME,
        )

    def decode(self, response: CompletionResponse, batch: Sequence[TimestampEntry]) -> TranslationOutput:
        if response.refusal:
            return self.output_from(response, [])

        data = validate_structured(response.content, response.parsed, TIMESTAMP_SCHEMA, SCHEMA_NAME)
        try:
            entries = [TimestampEntry(**item) for item in data["outputs"]]
        except pydantic.ValidationError as e:
            raise SchemaValidationError(
                "Invalid timestamp entry in response",
                validation_errors=[err["msg"] for err in e.errors()[:10]],
                schema_name=SCHEMA_NAME,
            ) from e
        return self.output_from(response, entries)

    def is_mismatch(self, batch: Sequence[TimestampEntry], output: TranslationOutput, line_matching: bool) -> bool:
        if not output.content:
            return True

        last_input_end = batch[-1].end
        last_output_end = output.content[-1].end
        if abs(last_output_end - last_input_end) > TOLERANCE_SECONDS:
            logger.debug(
                "Timestamp boundary mismatch",
                expected_end=seconds_to_timestamp(last_input_end),
                received_end=seconds_to_timestamp(last_output_end),
                inputs=len(batch),
                outputs=len(output.content),
            )
            return True

        if len(output.content) != len(batch):
            merge_start = next(
                (
                    i for i, out in enumerate(output.content)
                    if i < len(batch) and abs(out.start - batch[i].start) > TOLERANCE_SECONDS
                ),
                len(output.content),
            )
            logger.debug(
                "Merging detected",
                from_entry=merge_start,
                inputs=len(batch),
                outputs=len(output.content),
            )
        return False

    def render_context(self, entries: list[WorkingEntry]) -> list[ChatMessage]:
        if not entries:
            return []
        inputs = [{"start": e.start, "end": e.end, "text": e.source} for e in entries]
        outputs = [{"start": e.start, "end": e.end, "text": e.translation} for e in entries]
        return [
            ChatMessage(role=MessageRole.USER, content=_dumps({"inputs": inputs})),
            ChatMessage(role=MessageRole.ASSISTANT, content=_dumps({"outputs": outputs})),
        ]


def _dumps(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False)
