"""
Moderation gate.

Checks text with the moderation service before it is submitted for
translation, under its own rate limiter and the shared retry policy.
"""

from typing import Optional

import structlog

from line_translator.llm.base_client import BaseModerationClient
from line_translator.models.llm_models import ModerationResult
from line_translator.models.translation_models import ModerationCategory, describe_categories
from line_translator.retry.cooldown import CooldownLimiter
from line_translator.retry.policy import RetryPolicy

logger = structlog.get_logger(__name__)


def flagged_categories(result: ModerationResult) -> list[ModerationCategory]:
    """Categories that triggered, with their scores."""
    return [
        ModerationCategory(category=name, score=float(result.category_scores.get(name, 0.0)))
        for name, hit in result.categories.items()
        if hit
    ]


def describe_moderation(result: ModerationResult) -> str:
    """Render a result as `"category: 0.123 other: 0.456"`."""
    return describe_categories(flagged_categories(result))


class Moderator:
    """
    Rate-limited, retried wrapper around a BaseModerationClient.
    """

    def __init__(
        self,
        client: BaseModerationClient,
        retry_policy: RetryPolicy,
        cooler: Optional[CooldownLimiter] = None,
    ):
        self.client = client
        self.retry_policy = retry_policy
        self.cooler = cooler

    async def check(self, text: str) -> ModerationResult:
        """
        Moderate text.

        Raises:
            RetryExhausted: Transient failures exceeded the retry ceiling
            LLMFatalError: Non-retryable service error
        """
        async def _call() -> ModerationResult:
            if self.cooler is not None:
                await self.cooler.acquire()
            return await self.client.moderate(text)

        result = await self.retry_policy.run(_call, label="CheckModeration")

        if result.flagged:
            logger.warning(
                "Moderation flagged input",
                categories=describe_moderation(result),
                text_length=len(text),
            )
        return result
