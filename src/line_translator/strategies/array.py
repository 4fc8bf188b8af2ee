"""
Schema-array strategy.

Sends `{"inputs": [...]}` and constrains the answer to `{"outputs": [str]}`.
Single items and responses that fail validation go through the delimited
text fallback.
"""

import json
from typing import Optional, Sequence

import structlog

from line_translator.models.enums import MessageRole
from line_translator.models.llm_models import ChatMessage, CompletionRequest, CompletionResponse
from line_translator.models.options import STRUCTURED_MAX_BATCH_SIZE
from line_translator.models.translation_models import TranslationOutput, WorkingEntry
from line_translator.strategies.base import StructuredOutputStrategy
from line_translator.validation import validate_structured

logger = structlog.get_logger(__name__)

SCHEMA_NAME = "translation_array"

ARRAY_SCHEMA = {
    "type": "object",
    "properties": {
        "outputs": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["outputs"],
    "additionalProperties": False,
}


class ArrayStrategy(StructuredOutputStrategy):
    """List-of-strings in, list-of-strings out."""

    name = "array"
    max_batch_size = STRUCTURED_MAX_BATCH_SIZE

    def handles(self, batch: Sequence[str]) -> bool:
        return len(batch) > 1

    def encode(
        self,
        batch: Sequence[str],
        context: list[ChatMessage],
        model: Optional[str] = None,
    ) -> CompletionRequest:
        messages = self.builder.build_messages(context, _dumps({"inputs": list(batch)}))
        return self.builder.build_request(
            messages,
            model=model,
            max_tokens=self.estimate_max_tokens(list(batch)),
            response_schema=ARRAY_SCHEMA,
            schema_name=SCHEMA_NAME,
        )

    def decode(self, response: CompletionResponse, batch: Sequence[str]) -> TranslationOutput:
        if response.refusal:
            return self.output_from(response, [response.refusal])
        data = validate_structured(response.content, response.parsed, ARRAY_SCHEMA, SCHEMA_NAME)
        return self.output_from(response, list(data["outputs"]))

    def render_context(self, entries: list[WorkingEntry]) -> list[ChatMessage]:
        if not entries:
            return []
        return [
            ChatMessage(role=MessageRole.USER, content=_dumps({"inputs": [e.source for e in entries]})),
            ChatMessage(role=MessageRole.ASSISTANT, content=_dumps({"outputs": [e.translation for e in entries]})),
        ]


def _dumps(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False)
