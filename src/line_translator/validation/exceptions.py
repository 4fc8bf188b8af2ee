"""
Exceptions raised while decoding structured (JSON) responses.

Strategies raise them from decode(); the engine catches ValidationError,
records the rejected response as wasted and resubmits the batch through the
delimited text fallback.
"""

from typing import Any, Optional

# Malformed responses can be as long as the whole batch
SNIPPET_CHARS = 500


class ValidationError(Exception):
    """
    A structured response could not be used.

    Attributes:
        message: Human-readable description
        details: Structured data for logs (snippet, parser message, schema errors)
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message} | Details: {self.details}"


class JSONParseError(ValidationError):
    """Content is empty, not JSON, or JSON but not an object."""

    def __init__(
        self,
        message: str,
        raw_content: Optional[str] = None,
        parse_error: Optional[str] = None,
    ):
        details: dict[str, Any] = {}
        if raw_content:
            details["content_snippet"] = raw_content[:SNIPPET_CHARS]
        if parse_error:
            details["parse_error"] = parse_error
        super().__init__(message, details)


class SchemaValidationError(ValidationError):
    """
    Parsed payload violates the response schema sent with the request.

    Strict json_schema mode normally rules this out; servers that ignore
    response_format do not.
    """

    def __init__(
        self,
        message: str,
        validation_errors: Optional[list[str]] = None,
        schema_name: Optional[str] = None,
    ):
        details: dict[str, Any] = {}
        if validation_errors:
            details["validation_errors"] = validation_errors
        if schema_name:
            details["schema_name"] = schema_name
        super().__init__(message, details)
