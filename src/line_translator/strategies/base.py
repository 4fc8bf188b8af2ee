"""
Structured output strategy interface.

A strategy owns the wire encoding of a batch: how the lines are sent, which
response schema (if any) constrains the answer, how the answer is decoded,
and what counts as a shape mismatch. The engine's shrink/grow/fallback
control flow is identical for every strategy.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import structlog

from line_translator.llm.prompt_builder import PromptBuilder
from line_translator.llm.text_utils import encode_line
from line_translator.models.llm_models import ChatMessage, CompletionRequest, CompletionResponse
from line_translator.models.options import TranslatorOptions
from line_translator.models.translation_models import TranslationOutput, WorkingEntry

logger = structlog.get_logger(__name__)

# Output budget for schema-constrained requests; keeps the chars*5 estimate
# under the completion limit of current models
STRUCTURED_MAX_TOKENS = 16384


class StructuredOutputStrategy(ABC):
    """
    Base class for batch wire encodings.

    Attributes:
        name: Strategy name used in logs and metrics
        max_batch_size: Hard cap on batch sizes (None for no cap)
        timed: Whether items are TimestampEntry objects rather than strings
        fallback: Strategy used for single items and undecodable responses
    """

    name: str = "base"
    max_batch_size: Optional[int] = None
    timed: bool = False

    def __init__(self, builder: PromptBuilder, options: TranslatorOptions):
        self.builder = builder
        self.options = options
        self.fallback: Optional["StructuredOutputStrategy"] = None

    def prepare_line(self, line: Any, index: int, offset: int) -> Any:
        """Encode one input item for the wire (marker encoding, optional label)."""
        return encode_line(line, index, offset, prefix_number=self.options.prefix_number)

    def handles(self, batch: Sequence[Any]) -> bool:
        """Whether this strategy encodes the batch itself or hands it to the fallback."""
        return True

    def resolve(self, batch: Sequence[Any]) -> "StructuredOutputStrategy":
        """Strategy that will actually be used for this batch."""
        if self.fallback is not None and not self.handles(batch):
            return self.fallback
        return self

    def moderation_text(self, batch: Sequence[Any]) -> str:
        """Text sent to the moderation service for a batch."""
        return "\n\n".join(batch)

    @abstractmethod
    def encode(
        self,
        batch: Sequence[Any],
        context: list[ChatMessage],
        model: Optional[str] = None,
    ) -> CompletionRequest:
        """Build the completion request for a batch."""

    @abstractmethod
    def decode(self, response: CompletionResponse, batch: Sequence[Any]) -> TranslationOutput:
        """
        Turn a response into a TranslationOutput.

        Raises:
            ValidationError: Structured payload could not be parsed or validated
        """

    def is_mismatch(self, batch: Sequence[Any], output: TranslationOutput, line_matching: bool) -> bool:
        """Whether the output shape is unusable for this batch."""
        return line_matching and len(output.content) != len(batch)

    @abstractmethod
    def render_context(self, entries: list[WorkingEntry]) -> list[ChatMessage]:
        """Render prior exchanges as chat messages in this strategy's wire format."""

    def output_from(self, response: CompletionResponse, content: list[Any], **extra: Any) -> TranslationOutput:
        """Wrap decoded content with the response's usage."""
        usage = response.usage
        return TranslationOutput(
            content=content,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            cached_tokens=usage.cached_tokens,
            total_tokens=usage.total,
            refusal=response.refusal,
            model=response.model,
            **extra,
        )

    @staticmethod
    def estimate_max_tokens(payload: Any) -> int:
        """Generous output budget for a schema-constrained request."""
        return min(len(json.dumps(payload, ensure_ascii=False)) * 5, STRUCTURED_MAX_TOKENS)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
