"""
Usage and cost accounting.

Tracks tokens spent per run, separating tokens wasted on discarded responses
(shape mismatch, multi-line refusal, undecodable structured output). The
derived view is for reporting only and never drives engine decisions.
"""

from dataclasses import dataclass
from typing import Any, Optional

import structlog

from line_translator.models.translation_models import TranslationOutput
from line_translator.monitoring.metrics import llm_tokens_total

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ModelPrice:
    """USD per 1k tokens."""

    prompt: float
    completion: float


PRICE_PER_1K_TOKENS: dict[str, ModelPrice] = {
    "gpt-3.5-turbo": ModelPrice(prompt=0.002, completion=0.002),
    "gpt-4": ModelPrice(prompt=0.03, completion=0.03),
    "gpt-4-32k": ModelPrice(prompt=0.06, completion=0.06),
    "gpt-4o": ModelPrice(prompt=0.0025, completion=0.01),
    "gpt-4o-mini": ModelPrice(prompt=0.00015, completion=0.0006),
}


def lookup_price(model: str) -> Optional[ModelPrice]:
    """Exact match first, then the longest known prefix (dated model names)."""
    if model in PRICE_PER_1K_TOKENS:
        return PRICE_PER_1K_TOKENS[model]
    prefixes = [name for name in PRICE_PER_1K_TOKENS if model.startswith(f"{name}-")]
    if not prefixes:
        return None
    return PRICE_PER_1K_TOKENS[max(prefixes, key=len)]


class UsageAccount:
    """
    Token counters for one translation run.

    Every response is recorded as used; responses that were discarded are
    additionally recorded as wasted.
    """

    def __init__(self, model: str):
        self.model = model
        self.prompt_tokens_used = 0
        self.completion_tokens_used = 0
        self.prompt_tokens_wasted = 0
        self.completion_tokens_wasted = 0
        self.cached_tokens = 0
        self.processing_seconds = 0.0
        self.requests = 0

    def record(self, output: TranslationOutput, elapsed_seconds: float = 0.0) -> None:
        self.prompt_tokens_used += output.prompt_tokens
        self.completion_tokens_used += output.completion_tokens
        self.cached_tokens += output.cached_tokens
        self.processing_seconds += elapsed_seconds
        self.requests += 1

        model = output.model or self.model
        llm_tokens_total.labels(model=model, token_type="prompt").inc(output.prompt_tokens)
        llm_tokens_total.labels(model=model, token_type="completion").inc(output.completion_tokens)
        if output.cached_tokens:
            llm_tokens_total.labels(model=model, token_type="cached").inc(output.cached_tokens)

    def record_wasted(self, output: TranslationOutput) -> None:
        self.prompt_tokens_wasted += output.prompt_tokens
        self.completion_tokens_wasted += output.completion_tokens

        model = output.model or self.model
        llm_tokens_total.labels(model=model, token_type="wasted_prompt").inc(output.prompt_tokens)
        llm_tokens_total.labels(model=model, token_type="wasted_completion").inc(output.completion_tokens)

    @property
    def tokens_used(self) -> int:
        return self.prompt_tokens_used + self.completion_tokens_used

    @property
    def tokens_wasted(self) -> int:
        return self.prompt_tokens_wasted + self.completion_tokens_wasted

    def _price(self, prompt_tokens: int, completion_tokens: int) -> Optional[float]:
        price = lookup_price(self.model)
        if price is None:
            return None
        return (prompt_tokens * price.prompt + completion_tokens * price.completion) / 1000

    @property
    def cost(self) -> Optional[float]:
        """USD spent so far, None for models missing from the price table."""
        return self._price(self.prompt_tokens_used, self.completion_tokens_used)

    @property
    def wasted_cost(self) -> Optional[float]:
        return self._price(self.prompt_tokens_wasted, self.completion_tokens_wasted)

    @property
    def wasted_percent(self) -> float:
        if self.tokens_used == 0:
            return 0.0
        return 100.0 * self.tokens_wasted / self.tokens_used

    @property
    def tokens_per_minute(self) -> Optional[float]:
        if self.processing_seconds <= 0:
            return None
        return self.tokens_used / (self.processing_seconds / 60)

    def snapshot(self) -> dict[str, Any]:
        """Read-only view of the counters and derived figures."""
        return {
            "model": self.model,
            "requests": self.requests,
            "prompt_tokens_used": self.prompt_tokens_used,
            "completion_tokens_used": self.completion_tokens_used,
            "prompt_tokens_wasted": self.prompt_tokens_wasted,
            "completion_tokens_wasted": self.completion_tokens_wasted,
            "cached_tokens": self.cached_tokens,
            "tokens_used": self.tokens_used,
            "tokens_wasted": self.tokens_wasted,
            "cost": _round(self.cost, 3),
            "wasted_cost": _round(self.wasted_cost, 3),
            "wasted_percent": round(self.wasted_percent, 1),
            "tokens_per_minute": _round(self.tokens_per_minute, 2),
            "processing_seconds": round(self.processing_seconds, 3),
        }

    def log_usage(self, rate: Optional[int] = None) -> None:
        """Log the snapshot; `rate` is the completion limiter's requests in window."""
        if lookup_price(self.model) is None:
            logger.debug("Cost computation not supported for model", model=self.model)
        logger.info("Usage", rpm=rate, **self.snapshot())


def _round(value: Optional[float], digits: int) -> Optional[float]:
    return None if value is None else round(value, digits)
