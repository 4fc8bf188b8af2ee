"""
Delimited text strategy.

The plain wire format: batch lines joined by a blank line in a single user
message, the answer split on newlines with empty lines dropped.
"""

from typing import Optional, Sequence

from line_translator.llm.text_utils import split_output_lines
from line_translator.models.enums import MessageRole
from line_translator.models.llm_models import ChatMessage, CompletionRequest, CompletionResponse
from line_translator.models.translation_models import TranslationOutput, WorkingEntry
from line_translator.strategies.base import StructuredOutputStrategy

LINE_SEPARATOR = "\n\n"


class DelimitedTextStrategy(StructuredOutputStrategy):
    """One line per item, blank-line separated."""

    name = "delimited"

    def encode(
        self,
        batch: Sequence[str],
        context: list[ChatMessage],
        model: Optional[str] = None,
    ) -> CompletionRequest:
        messages = self.builder.build_messages(context, LINE_SEPARATOR.join(batch))
        return self.builder.build_request(messages, model=model)

    def decode(self, response: CompletionResponse, batch: Sequence[str]) -> TranslationOutput:
        if response.refusal:
            return self.output_from(response, [response.refusal])
        return self.output_from(response, split_output_lines(response.content))

    def render_context(self, entries: list[WorkingEntry]) -> list[ChatMessage]:
        if not entries:
            return []
        return [
            ChatMessage(role=MessageRole.USER, content=LINE_SEPARATOR.join(e.source for e in entries)),
            ChatMessage(role=MessageRole.ASSISTANT, content=LINE_SEPARATOR.join(e.translation for e in entries)),
        ]
