"""
Retry context tracking.

This module defines the RetryContext dataclass handed to retry observers and
carried by RetryExhausted.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RetryContext:
    """
    State of one submission's retry loop, scoped to a single RetryPolicy.run().

    Attributes:
        attempt: Attempt that just failed (1-indexed)
        last_error: Exception raised by that attempt
        max_attempts: Attempt ceiling for this submission
        label: Name of the wrapped call (for logs and metrics)
    """

    attempt: int
    last_error: Optional[BaseException]
    max_attempts: int
    label: str = ""

    def __post_init__(self) -> None:
        """Validate context invariants."""
        if self.attempt < 1:
            raise ValueError("attempt must be >= 1")

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts
