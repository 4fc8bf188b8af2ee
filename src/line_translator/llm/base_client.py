"""
Abstract ports for the completion and moderation services.

Defines the interface that all client implementations must adhere to. The
engine depends only on these classes, so backends can be swapped (or mocked
in tests) without touching orchestration logic.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional
import structlog

from line_translator.models.llm_models import (
    CompletionRequest,
    CompletionResponse,
    ModerationResult,
)


logger = structlog.get_logger(__name__)

DeltaCallback = Callable[[str], None]


class BaseCompletionClient(ABC):
    """
    Abstract base class for chat completion clients.

    Responsibilities:
    - Send completion requests (optionally streamed)
    - Parse responses into CompletionResponse (content, parsed, refusal, usage)
    - Map transport failures onto line_translator.llm.exceptions

    Does NOT handle:
    - Prompt construction (that's the strategy's and PromptBuilder's job)
    - Line count validation (that's the engine's job)
    - Retry and rate limiting (that's RetryPolicy's and CooldownLimiter's job)
    """

    @abstractmethod
    async def complete(
        self,
        request: CompletionRequest,
        on_delta: Optional[DeltaCallback] = None,
    ) -> CompletionResponse:
        """
        Run a chat completion.

        Args:
            request: Standardized completion request
            on_delta: Called with each text delta when request.stream is set

        Returns:
            CompletionResponse with content, structured payload and usage

        Raises:
            LLMTransientError: Rate limit, server error, broken stream, network
            LLMFatalError: Client error (bad request, auth, unknown model)
        """
        pass

    async def close(self):
        """
        Close client connections and cleanup resources.

        Default implementation does nothing.
        """
        logger.debug("Closing completion client", client_class=self.__class__.__name__)


class BaseModerationClient(ABC):
    """
    Abstract base class for moderation clients.
    """

    @abstractmethod
    async def moderate(self, text: str) -> ModerationResult:
        """
        Classify text against the service's content policy.

        Raises:
            LLMTransientError: Retryable failure
            LLMFatalError: Non-retryable failure
        """
        pass
