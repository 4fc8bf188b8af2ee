"""
Retry policy for calls to the remote LLM services.

Wraps a single network call and classifies what it raises:

    - transient (429, 5xx, broken stream, network): retry with backoff
    - fatal (any other client error): re-raise immediately
    - unclassified (anything else): a defect, logged and re-raised unchanged

Backoff is `backoff_base * attempt^2` seconds, multiplied once more by the
attempt number for rate limits and server errors.

Usage:
    policy = RetryPolicy(max_attempts=3)
    response = await policy.run(lambda: client.complete(request), label="TranslationPrompt")
"""

import asyncio
import inspect
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from line_translator.config import Settings
from line_translator.llm.exceptions import (
    LLMClientError,
    LLMRateLimitError,
    LLMServerError,
    LLMTransientError,
)
from line_translator.monitoring.metrics import retries_total
from line_translator.retry.exceptions import RetryExhausted
from line_translator.retry.metadata import RetryContext

logger = structlog.get_logger(__name__)

T = TypeVar("T")
RetryObserver = Callable[[RetryContext], Optional[Awaitable[None]]]


class ErrorKind(str, Enum):
    """Classification of a failed attempt."""

    TRANSIENT = "transient"
    FATAL = "fatal"
    UNCLASSIFIED = "unclassified"


class RetryPolicy:
    """
    Generic retry driver with error classification and exponential backoff.

    Attributes:
        max_attempts: Default attempt ceiling per call
        backoff_base: Seconds multiplied by attempt^2 between attempts
        on_retry: Observer called with the RetryContext before each sleep
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        on_retry: Optional[RetryObserver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize retry policy.

        Args:
            max_attempts: Default attempt ceiling per call
            backoff_base: Backoff unit in seconds
            on_retry: Observer for retries (sync or async)
            sleep: Awaitable sleep, replaceable in tests
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.on_retry = on_retry
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "RetryPolicy":
        return cls(
            max_attempts=settings.MAX_RETRIES,
            backoff_base=settings.RETRY_BACKOFF_BASE,
            **kwargs,
        )

    @staticmethod
    def classify(error: BaseException) -> ErrorKind:
        if isinstance(error, LLMTransientError):
            return ErrorKind.TRANSIENT
        if isinstance(error, LLMClientError):
            return ErrorKind.FATAL
        return ErrorKind.UNCLASSIFIED

    def backoff_seconds(self, error: BaseException, attempt: int) -> float:
        """
        Delay before the next attempt.

        Examples (backoff_base=1.0):
            stream error, attempt 2 -> 4.0
            429, attempt 2 -> 8.0
        """
        delay = self.backoff_base * attempt * attempt
        if isinstance(error, (LLMRateLimitError, LLMServerError)):
            delay *= attempt
        return delay

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
        label: str = "",
    ) -> T:
        """
        Run fn until it succeeds or the attempt ceiling is reached.

        Args:
            fn: Zero-argument coroutine factory, called once per attempt
            max_attempts: Override the default ceiling
            label: Name used in logs, metrics and RetryExhausted

        Returns:
            Whatever fn returns on its first successful attempt

        Raises:
            RetryExhausted: Every attempt failed with a transient error
            LLMClientError: First fatal error, unchanged
            Exception: Any unclassified error, unchanged
        """
        ceiling = max_attempts or self.max_attempts

        for attempt in range(1, ceiling + 1):
            try:
                return await fn()
            except Exception as e:
                kind = self.classify(e)

                if kind is ErrorKind.FATAL:
                    logger.error(
                        "Fatal service error, not retrying",
                        label=label,
                        attempt=attempt,
                        error_type=type(e).__name__,
                        status=getattr(e, "status", None),
                        error=str(e),
                    )
                    raise

                if kind is ErrorKind.UNCLASSIFIED:
                    logger.error(
                        "Unknown error in retried call",
                        label=label,
                        attempt=attempt,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    raise

                context = RetryContext(
                    attempt=attempt,
                    last_error=e,
                    max_attempts=ceiling,
                    label=label,
                )
                if context.exhausted:
                    logger.error(
                        "Max retries reached",
                        label=label,
                        attempts=attempt,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    raise RetryExhausted(label, context) from e

                retries_total.labels(label=label or "unlabelled", error_type=type(e).__name__).inc()

                delay = self.backoff_seconds(e, attempt)
                logger.warning(
                    "Transient service error, retrying",
                    label=label,
                    attempt=attempt,
                    max_attempts=ceiling,
                    delay_seconds=delay,
                    error_type=type(e).__name__,
                    status=getattr(e, "status", None),
                    error=str(e),
                )

                if self.on_retry is not None:
                    outcome = self.on_retry(context)
                    if inspect.isawaitable(outcome):
                        await outcome

                await self._sleep(delay)

        # Unreachable: the loop either returns or raises
        raise AssertionError("retry loop exited without result")
