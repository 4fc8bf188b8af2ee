"""
Translator options.

Explicit configuration struct for one TranslationEngine. Defaults are applied
field by field and the whole set is validated once at construction; the
engine never inspects raw dicts.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from line_translator.models.enums import HistoryMode, StructuredMode
from line_translator.models.llm_models import ChatMessage

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZES = [10, 100]
STRUCTURED_BATCH_SIZES = [10, 20]
STRUCTURED_MAX_BATCH_SIZE = 100


class Language(BaseModel):
    """Source/target language pair; the source may be left to the model."""
    model_config = ConfigDict(frozen=True)

    target: str = Field(..., min_length=1)
    source: Optional[str] = None


class TranslatorOptions(BaseModel):
    """
    Options for a translation run.

    Attributes:
        model: Completion model name
        temperature: Sampling temperature (keep low for stable line counts)
        top_p: Nucleus sampling parameter
        system_instruction: Overrides the default "Translate {from} to {to}"
        initial_prompts: Messages inserted after the system instruction
        use_moderator: Check input with the moderation service before submitting
        prefix_number: Label lines with 1-based indices to pin input/output alignment
        line_matching: Enforce one-to-one input/output line counts
        history_mode: How prior exchanges are selected for context
        history_budget: Entry count or token budget for the history mode
        batch_sizes: Ascending candidate batch sizes (largest used first)
        structured_mode: Wire encoding of a batch
        stream: Request incremental deltas
        fallback_model: Model retried once for a single-line refusal
        max_tokens_per_request: Upper bound on generated tokens per request
    """
    model_config = ConfigDict(frozen=True)

    model: str = "gpt-4o-mini"
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    system_instruction: Optional[str] = None
    initial_prompts: list[ChatMessage] = Field(default_factory=list)
    use_moderator: bool = True
    prefix_number: bool = True
    line_matching: bool = True
    history_mode: HistoryMode = HistoryMode.ENTRIES
    history_budget: int = Field(default=10, ge=0)
    batch_sizes: list[int] = Field(default_factory=lambda: list(DEFAULT_BATCH_SIZES))
    structured_mode: StructuredMode = StructuredMode.NONE
    stream: bool = False
    fallback_model: Optional[str] = None
    max_tokens_per_request: Optional[int] = Field(default=None, ge=1)

    @field_validator("batch_sizes")
    @classmethod
    def _check_batch_sizes(cls, sizes: list[int]) -> list[int]:
        if not sizes:
            raise ValueError("batch_sizes must not be empty")
        if any(size < 1 for size in sizes):
            raise ValueError(f"batch_sizes must be positive, got {sizes}")
        if any(b <= a for a, b in zip(sizes, sizes[1:])):
            raise ValueError(f"batch_sizes must be strictly ascending, got {sizes}")
        return sizes

    @model_validator(mode="after")
    def _check_structured_cap(self) -> "TranslatorOptions":
        if self.structured_mode in (StructuredMode.ARRAY, StructuredMode.OBJECT):
            oversized = [s for s in self.batch_sizes if s > STRUCTURED_MAX_BATCH_SIZE]
            if oversized and self.batch_sizes != DEFAULT_BATCH_SIZES:
                raise ValueError(
                    f"Batch sizes should not exceed {STRUCTURED_MAX_BATCH_SIZE} "
                    f"in {self.structured_mode.value} mode, got {self.batch_sizes}"
                )
        return self

    def for_strategy(self) -> "TranslatorOptions":
        """
        Apply the overrides structured modes require.

        - numeric prefixes are turned off (keys/arrays carry alignment)
        - the default [10, 100] ladder is reduced to [10, 20] for array/object
        - timestamp mode never enforces line matching (entries may merge)
        """
        if not self.structured_mode.is_structured:
            return self

        update: dict = {}
        if self.prefix_number:
            logger.warning(
                "Numeric prefixes are not used in structured mode, overriding",
                structured_mode=self.structured_mode.value,
            )
            update["prefix_number"] = False
        if (
            self.structured_mode in (StructuredMode.ARRAY, StructuredMode.OBJECT)
            and self.batch_sizes == DEFAULT_BATCH_SIZES
        ):
            logger.warning(
                "Batch sizes reduced for structured mode",
                batch_sizes=STRUCTURED_BATCH_SIZES,
            )
            update["batch_sizes"] = list(STRUCTURED_BATCH_SIZES)
        if self.structured_mode is StructuredMode.TIMESTAMP and self.line_matching:
            update["line_matching"] = False

        return self.model_copy(update=update) if update else self
