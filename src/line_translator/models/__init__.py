"""
Pydantic data models for the line translator.

Includes:
- Enums (StructuredMode, HistoryMode, FlagReason, MessageRole)
- LLM port models (ChatMessage, CompletionRequest, CompletionResponse, ModerationResult)
- Translation models (TranslationOutput, WorkingEntry, ModerationFlag, TranslationResult)
- TranslatorOptions (validated per-run configuration)
"""

from line_translator.models.enums import FlagReason, HistoryMode, MessageRole, StructuredMode
from line_translator.models.llm_models import (
    ChatMessage,
    CompletionRequest,
    CompletionResponse,
    CompletionUsage,
    ModerationResult,
)
from line_translator.models.translation_models import (
    ModerationCategory,
    ModerationFlag,
    TimestampEntry,
    TranslationOutput,
    TranslationResult,
    WorkingEntry,
)
from line_translator.models.options import Language, TranslatorOptions

__all__ = [
    # Enums
    "FlagReason",
    "HistoryMode",
    "MessageRole",
    "StructuredMode",
    # LLM models
    "ChatMessage",
    "CompletionRequest",
    "CompletionResponse",
    "CompletionUsage",
    "ModerationResult",
    # Translation models
    "ModerationCategory",
    "ModerationFlag",
    "TimestampEntry",
    "TranslationOutput",
    "TranslationResult",
    "WorkingEntry",
    # Options
    "Language",
    "TranslatorOptions",
]
