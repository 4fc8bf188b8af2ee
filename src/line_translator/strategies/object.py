"""
Schema-object strategy.

Every batch line becomes a required key of the response schema and the model
answers with the translation as the key's value, so no user message is sent:
the payload travels in the schema itself. Lines carrying the `\\N` marker
become `nested_{i}` objects with one key per segment.

Example schema for ["Hello", "Good \\N morning"]:
    {"Hello": str, "nested_1": {"Good": str, "morning": str}}
"""

import json
from typing import Any, Optional, Sequence

import structlog

from line_translator.llm.text_utils import MULTILINE_MARKER
from line_translator.models.enums import MessageRole
from line_translator.models.llm_models import ChatMessage, CompletionRequest, CompletionResponse
from line_translator.models.options import STRUCTURED_MAX_BATCH_SIZE
from line_translator.models.translation_models import TranslationOutput, WorkingEntry
from line_translator.strategies.base import StructuredOutputStrategy
from line_translator.validation import validate_structured

logger = structlog.get_logger(__name__)

SCHEMA_NAME = "translation_object"
NESTED_PREFIX = "nested_"


def _unique(key: str, seen: dict[str, int]) -> str:
    """Suffix repeated keys with ` #n` so every line keeps its own slot."""
    count = seen.get(key, 0) + 1
    seen[key] = count
    return key if count == 1 else f"{key} #{count}"


def build_keys(batch: Sequence[str]) -> list[tuple[str, Optional[list[str]]]]:
    """
    Response keys for a batch, in order.

    Returns:
        (key, nested segment keys or None) per line
    """
    keys: list[tuple[str, Optional[list[str]]]] = []
    seen: dict[str, int] = {}
    for index, line in enumerate(batch):
        if MULTILINE_MARKER in line:
            nested_seen: dict[str, int] = {}
            segments = [
                _unique(segment.replace("\\", "").strip(), nested_seen)
                for segment in line.split(MULTILINE_MARKER)
            ]
            keys.append((f"{NESTED_PREFIX}{index}", segments))
        else:
            keys.append((_unique(line.replace("\\", ""), seen), None))
    return keys


def build_schema(batch: Sequence[str]) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    for key, segments in build_keys(batch):
        if segments is None:
            properties[key] = {"type": "string"}
        else:
            properties[key] = {
                "type": "object",
                "properties": {segment: {"type": "string"} for segment in segments},
                "required": segments,
                "additionalProperties": False,
            }
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


class ObjectStrategy(StructuredOutputStrategy):
    """One schema key per line."""

    name = "object"
    max_batch_size = STRUCTURED_MAX_BATCH_SIZE

    def handles(self, batch: Sequence[str]) -> bool:
        return len(batch) > 1

    def encode(
        self,
        batch: Sequence[str],
        context: list[ChatMessage],
        model: Optional[str] = None,
    ) -> CompletionRequest:
        messages = self.builder.build_messages(context)
        return self.builder.build_request(
            messages,
            model=model,
            max_tokens=self.estimate_max_tokens(list(batch)),
            response_schema=build_schema(batch),
            schema_name=SCHEMA_NAME,
        )

    def decode(self, response: CompletionResponse, batch: Sequence[str]) -> TranslationOutput:
        if response.refusal:
            return self.output_from(response, [response.refusal])

        data = validate_structured(response.content, response.parsed, build_schema(batch), SCHEMA_NAME)
        expected = [key for key, _ in build_keys(batch)]

        lines: list[str] = []
        for position, (key, value) in enumerate(data.items()):
            if key.startswith(NESTED_PREFIX) and isinstance(value, dict):
                lines.append(MULTILINE_MARKER.join(str(v) for v in value.values()))
                continue
            if position < len(expected) and key != expected[position]:
                logger.warning("Unexpected key", expected=expected[position], received=key)
            lines.append(str(value))

        return self.output_from(response, lines, keys=list(data.keys()))

    def is_mismatch(self, batch: Sequence[str], output: TranslationOutput, line_matching: bool) -> bool:
        if line_matching and len(output.content) != len(batch):
            return True
        if output.keys:
            expected_last = build_keys(batch)[-1][0]
            if output.keys[-1] != expected_last:
                logger.debug("Last key mismatch", expected=expected_last, received=output.keys[-1])
                return True
        return False

    def render_context(self, entries: list[WorkingEntry]) -> list[ChatMessage]:
        if not entries:
            return []
        seen: dict[str, int] = {}
        pairs = {_unique(e.source, seen): e.translation for e in entries}
        return [
            ChatMessage(role=MessageRole.ASSISTANT, content=json.dumps(pairs, ensure_ascii=False)),
        ]
