"""
Enumerations for translator configuration and results.

All enums are closed sets - no values outside these sets are permitted.
"""

from enum import Enum


class StructuredMode(str, Enum):
    """
    Wire encoding used to exchange a batch with the completion service.

    NONE is plain delimited text; the others constrain the response with a
    JSON Schema (OpenAI `json_schema` response format).
    """

    NONE = "none"
    ARRAY = "array"
    OBJECT = "object"
    TIMESTAMP = "timestamp"

    @property
    def is_structured(self) -> bool:
        return self is not StructuredMode.NONE


class HistoryMode(str, Enum):
    """
    How much prior (source, translation) history is sent as context.

    - ENTRIES: the last N entries
    - TOKENS: walk back until the accumulated token usage exceeds N
    - FULL: every entry translated so far
    """

    ENTRIES = "entries"
    TOKENS = "tokens"
    FULL = "full"


class FlagReason(str, Enum):
    """Why a line was flagged and excluded from future context."""

    MODERATION = "moderation"
    LABEL_MISMATCH = "label mismatch"


class MessageRole(str, Enum):
    """Chat message roles understood by the completion service."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
