"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across unit and integration tests.
"""

import pytest

from line_translator.config import Settings
from line_translator.models.llm_models import CompletionResponse, CompletionUsage
from line_translator.models.options import Language


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults for local testing.

    Override specific settings in individual tests as needed:
        def test_something(test_settings):
            test_settings.OPENAI_API_RPM = 2
    """
    return Settings(
        # === Application ===
        APP_NAME="LLM Line Translator (Test)",
        APP_VERSION="0.1.0",
        DEBUG=True,
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",

        # === OpenAI-compatible API ===
        OPENAI_API_KEY="sk-test",
        OPENAI_BASE_URL="http://localhost:8080/v1",
        OPENAI_MODEL="gpt-4o-mini",
        OPENAI_TIMEOUT=30,
        FALLBACK_MODEL=None,

        # === Rate limiting ===
        OPENAI_API_RPM=60,
        OPENAI_API_MODERATOR_RPM=None,
        COOLDOWN_WINDOW_SECONDS=60.0,

        # === Retry ===
        MAX_RETRIES=3,
        RETRY_BACKOFF_BASE=0.0,  # No real sleeping in tests

        PROMETHEUS_ENABLED=False,  # Disable metrics in tests unless explicitly needed
    )


@pytest.fixture
def french() -> Language:
    return Language(source="English", target="French")


@pytest.fixture
def make_response():
    """Factory fixture to create CompletionResponse objects.

    Usage:
        def test_something(make_response):
            response = make_response("1. Bonjour", prompt_tokens=20)
    """
    def _create(
        content: str = "",
        prompt_tokens: int = 10,
        completion_tokens: int = 10,
        refusal: str | None = None,
        parsed=None,
        model: str = "gpt-4o-mini",
    ) -> CompletionResponse:
        return CompletionResponse(
            content=content,
            parsed=parsed,
            refusal=refusal,
            model=model,
            finish_reason="stop",
            usage=CompletionUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
            latency_ms=100,
        )
    return _create
