"""
Shared helpers for tests.

Plain functions (not fixtures) used inside mocked completion handlers.
"""

from unittest.mock import AsyncMock

from line_translator.llm.base_client import BaseCompletionClient
from line_translator.models.llm_models import CompletionRequest


def user_lines(request: CompletionRequest) -> list[str]:
    """Batch lines sent in the last user message of a delimited request."""
    return request.messages[-1].content.split("\n\n")


def make_client(handler) -> AsyncMock:
    """Mock completion client whose complete() runs handler (or raises/returns it)."""
    client = AsyncMock(spec=BaseCompletionClient)
    client.complete.side_effect = handler
    return client
