"""
Custom exceptions for the LLM client layer.

These exceptions let the retry policy classify failures without inspecting
HTTP details:

- LLMTransientError subclasses are retried with backoff
- LLMFatalError is surfaced immediately and ends the run
- anything else is a defect and propagates unchanged
"""


class LLMClientError(Exception):
    """
    Base exception for all LLM client errors.

    All LLM-specific exceptions inherit from this to allow catching
    any LLM-related error with a single except clause.
    """
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def status(self) -> int | None:
        return self.details.get("status")


class LLMTransientError(LLMClientError):
    """
    Base for failures worth retrying (rate limits, server errors, broken streams).
    """
    pass


class LLMRateLimitError(LLMTransientError):
    """
    Raised when the service rate-limits the request (HTTP 429).

    Retried with the steepest backoff.
    """
    pass


class LLMServerError(LLMTransientError):
    """
    Raised on HTTP 5xx responses.

    Retried with the same backoff as rate limits.
    """
    pass


class LLMStreamParseError(LLMTransientError):
    """
    Raised when a streamed chunk cannot be decoded.

    The partial output is discarded and the request retried.
    """
    pass


class LLMConnectionError(LLMTransientError):
    """
    Raised when unable to reach the service (DNS, refused connection, reset).
    """
    pass


class LLMTimeoutError(LLMConnectionError):
    """
    Raised when the transport timeout elapses before a response arrives.
    """
    pass


class LLMFatalError(LLMClientError):
    """
    Raised on client errors (4xx other than 429): bad request, auth, unknown model.

    Never retried; the run is terminated.
    """
    pass
