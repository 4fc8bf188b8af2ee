"""Unit test fixtures (mocks and stubs).

Provides mock completion/moderation clients for testing without a live
service. The echo handlers answer like a perfectly obedient model: every
input line comes back unchanged.
"""

import json
from unittest.mock import AsyncMock

import pytest

from line_translator.llm.base_client import BaseModerationClient
from line_translator.models.llm_models import CompletionRequest, ModerationResult
from line_translator.retry.policy import RetryPolicy
from tests.fixtures import make_client, user_lines


@pytest.fixture
def no_sleep():
    """Awaitable sleep that returns immediately, records requested delays."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def retry_policy(no_sleep) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, sleep=no_sleep)


@pytest.fixture
def echo_handler(make_response):
    """Completion side effect echoing delimited batches line by line."""
    def _handler(request: CompletionRequest, on_delta=None):
        return make_response("\n".join(user_lines(request)))
    return _handler


@pytest.fixture
def array_echo_handler(make_response):
    """Completion side effect echoing {"inputs": [...]} as {"outputs": [...]}."""
    def _handler(request: CompletionRequest, on_delta=None):
        if request.response_schema is None:
            return make_response("\n".join(user_lines(request)))
        inputs = json.loads(request.messages[-1].content)["inputs"]
        return make_response(json.dumps({"outputs": inputs}))
    return _handler


@pytest.fixture
def mock_completion_client(echo_handler) -> AsyncMock:
    """Mock completion client echoing delimited input."""
    return make_client(echo_handler)


@pytest.fixture
def mock_moderation_client() -> AsyncMock:
    """Mock moderation client flagging any text containing "violent"."""
    client = AsyncMock(spec=BaseModerationClient)

    def _moderate(text: str) -> ModerationResult:
        if "violent" in text:
            return ModerationResult(
                flagged=True,
                categories={"violence": True, "hate": False},
                category_scores={"violence": 0.912, "hate": 0.01},
            )
        return ModerationResult(flagged=False)

    client.moderate.side_effect = _moderate
    return client
