"""Integration test fixtures (service checks and prerequisites).

Integration tests talk to a real OpenAI-compatible endpoint and are skipped
unless OPENAI_API_KEY is set.
"""

import os

import httpx
import pytest


@pytest.fixture(scope="session")
def check_openai():
    """Skip tests if no OpenAI-compatible endpoint is reachable."""
    if not os.getenv("OPENAI_API_KEY"):
        pytest.skip("OPENAI_API_KEY not set")

    base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
    try:
        response = httpx.get(
            f"{base_url}/models",
            headers={"Authorization": f"Bearer {os.environ['OPENAI_API_KEY']}"},
            timeout=10,
        )
        if response.status_code != 200:
            pytest.skip(f"OpenAI endpoint not available (status {response.status_code})")
    except httpx.HTTPError as e:
        pytest.skip(f"OpenAI endpoint not available: {e}")
