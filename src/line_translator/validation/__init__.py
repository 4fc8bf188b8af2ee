"""
Validation of structured (JSON) completion responses.

Two hard-fail stages run in order:

1. **JSONParseStage**: content must be a JSON object
2. **SchemaStage**: the object must match the response schema

Any ValidationError sends the batch to the delimited text fallback.
"""

from typing import Any, Optional

from line_translator.validation.exceptions import (
    JSONParseError,
    SchemaValidationError,
    ValidationError,
)
from line_translator.validation.json_parse import JSONParseStage
from line_translator.validation.schema import SchemaStage


def validate_structured(
    content: str,
    parsed: Optional[Any],
    schema: dict[str, Any],
    schema_name: Optional[str] = None,
) -> dict:
    """Run both stages over a response and return the validated payload."""
    data = JSONParseStage().validate(content, parsed)
    SchemaStage(schema, schema_name).validate(data)
    return data


__all__ = [
    "JSONParseError",
    "JSONParseStage",
    "SchemaStage",
    "SchemaValidationError",
    "ValidationError",
    "validate_structured",
]
