"""
Translation data models.

Value objects exchanged between the engine, the strategies and the caller:
- TranslationOutput: one submission attempt (batch or single line)
- WorkingEntry: one resolved line in the run history
- ModerationFlag: why a line is excluded from future context
- TranslationResult: what the engine yields to its caller
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from line_translator.models.enums import FlagReason


class TimestampEntry(BaseModel):
    """A timed cue exchanged in timestamp mode (seconds)."""
    model_config = ConfigDict(frozen=True)

    start: float = Field(..., ge=0.0)
    end: float = Field(..., ge=0.0)
    text: str


class TranslationOutput(BaseModel):
    """
    Decoded response for a single submission attempt.

    `content` holds one string per translated line, or TimestampEntry objects
    in timestamp mode. Never mutated after construction.
    """
    model_config = ConfigDict(frozen=True)

    content: list[Union[TimestampEntry, str]] = Field(default_factory=list)
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    cached_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    refusal: Optional[str] = None
    model: str = ""
    keys: Optional[list[str]] = Field(
        default=None,
        description="Response keys in order (object mode only)"
    )

    @model_validator(mode="before")
    @classmethod
    def _default_total(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("total_tokens") is None:
            data = {
                **data,
                "total_tokens": (data.get("prompt_tokens") or 0) + (data.get("completion_tokens") or 0),
            }
        return data

    @property
    def text(self) -> str:
        """Content as a single newline-joined string (line modes only)."""
        return "\n".join(str(line) for line in self.content)


class WorkingEntry(BaseModel):
    """
    One resolved line of the run history.

    `source` is the line as it was sent (after labelling/marker encoding) and
    `translation` the raw line returned by the model, so context replays the
    exact wire format. Token counts are the batch usage divided evenly across
    the batch: an approximation, not a per-line cost.
    """
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Absolute input position")
    source: str
    translation: str
    prompt_tokens: Optional[float] = None
    completion_tokens: Optional[float] = None
    start: Optional[float] = None
    end: Optional[float] = None

    @property
    def tokens(self) -> float:
        return (self.prompt_tokens or 0) + (self.completion_tokens or 0)


class ModerationCategory(BaseModel):
    """A moderation category that triggered, with its score."""
    model_config = ConfigDict(frozen=True)

    category: str
    score: float


class ModerationFlag(BaseModel):
    """Marker for a line excluded from future context."""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    reason: FlagReason
    categories: list[ModerationCategory] = Field(default_factory=list)
    out_index: Optional[int] = Field(
        default=None,
        description="Label the model actually returned (label mismatch only)"
    )

    @property
    def description(self) -> str:
        if self.categories:
            return describe_categories(self.categories)
        if self.reason == FlagReason.LABEL_MISMATCH.value:
            return f"label mismatch (got {self.out_index})"
        return str(self.reason)


class TranslationResult(BaseModel):
    """
    A translated line yielded by the engine.

    Attributes:
        index: Absolute 0-based input position
        source: Original input line
        transform: Cleaned translation (labels stripped, markers restored)
        final_transform: Text to write out, with flag annotation embedded
        flagged: Whether the line carries a moderation/label flag
    """
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    source: str
    transform: str
    final_transform: str
    flagged: bool = False
    start: Optional[float] = None
    end: Optional[float] = None


def describe_categories(categories: list[ModerationCategory]) -> str:
    """Render categories as `"category: 0.123 other: 0.456"`."""
    return " ".join(f"{c.category}: {c.score:.3f}" for c in categories)
