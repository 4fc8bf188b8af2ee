"""
Retry policy exceptions.

This module defines the exception raised when a call keeps failing with
transient errors until the attempt ceiling is reached. It terminates the
translation run and is surfaced to the caller.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from line_translator.retry.metadata import RetryContext


class RetryExhausted(Exception):
    """
    Raised when every attempt of a wrapped call failed.

    Attributes:
        label: Name of the wrapped call (e.g. "TranslationPrompt")
        context: RetryContext of the final attempt
        last_error: Final transient error that caused failure
    """

    def __init__(self, label: str, context: "RetryContext") -> None:
        """
        Initialize RetryExhausted exception.

        Args:
            label: Name of the wrapped call
            context: Retry context of the final attempt
        """
        self.label = label
        self.context = context
        self.last_error = context.last_error

        super().__init__(
            f"[{label}] Max retries reached after {context.attempt} attempts. "
            f"Final error: {type(context.last_error).__name__}: {context.last_error}"
        )
