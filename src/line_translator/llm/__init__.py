"""
LLM service layer.

Main Components:
    - BaseCompletionClient / BaseModerationClient: Ports the engine depends on
    - OpenAIClient: httpx implementation of both ports
    - Moderator: Rate-limited, retried moderation gate
    - PromptBuilder: System instruction and conversation assembly
    - text_utils: Line encoding, labels and token estimates

Exceptions are mapped onto a transient/fatal hierarchy that RetryPolicy
classifies (see line_translator.llm.exceptions).
"""

from line_translator.llm.base_client import BaseCompletionClient, BaseModerationClient
from line_translator.llm.exceptions import (
    LLMClientError,
    LLMConnectionError,
    LLMFatalError,
    LLMRateLimitError,
    LLMServerError,
    LLMStreamParseError,
    LLMTimeoutError,
    LLMTransientError,
)
from line_translator.llm.moderator import Moderator
from line_translator.llm.openai_client import OpenAIClient
from line_translator.llm.prompt_builder import PromptBuilder

__all__ = [
    "BaseCompletionClient",
    "BaseModerationClient",
    "LLMClientError",
    "LLMConnectionError",
    "LLMFatalError",
    "LLMRateLimitError",
    "LLMServerError",
    "LLMStreamParseError",
    "LLMTimeoutError",
    "LLMTransientError",
    "Moderator",
    "OpenAIClient",
    "PromptBuilder",
]
