"""
Retry and rate limiting for remote LLM calls.

Every request to the completion or moderation service goes through:

1. **CooldownLimiter**: sliding-window requests-per-minute gate
2. **RetryPolicy**: transient errors retried with exponential backoff,
   fatal errors surfaced immediately
3. **RetryExhausted**: raised once the attempt ceiling is reached

Main Components:
    - CooldownLimiter: Sliding-window rate limiter
    - RetryPolicy: Error classification and backoff driver
    - RetryContext: Attempt/error state handed to retry observers
    - RetryExhausted: Exception raised when all attempts fail

Usage:
    >>> from line_translator.retry import CooldownLimiter, RetryPolicy
    >>> cooler = CooldownLimiter(limit=60, window=60.0, description="ChatCompletion")
    >>> policy = RetryPolicy(max_attempts=3)
    >>> response = await policy.run(call, label="TranslationPrompt")
"""

from line_translator.retry.cooldown import CooldownLimiter
from line_translator.retry.exceptions import RetryExhausted
from line_translator.retry.metadata import RetryContext
from line_translator.retry.policy import ErrorKind, RetryPolicy

__all__ = [
    "CooldownLimiter",
    "ErrorKind",
    "RetryContext",
    "RetryExhausted",
    "RetryPolicy",
]
