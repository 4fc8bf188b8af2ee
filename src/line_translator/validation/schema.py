"""
JSON Schema stage.

Validate a parsed response against the schema that was sent with the
request. Strict json_schema mode should make this redundant; compatible
servers that ignore response_format are why it exists.
"""

from typing import Any

import structlog
from jsonschema import Draft7Validator

from line_translator.monitoring.metrics import validation_failures_total
from line_translator.validation.exceptions import SchemaValidationError

logger = structlog.get_logger(__name__)


class SchemaStage:
    """
    Validate against an in-memory JSON Schema.

    Raises SchemaValidationError on schema violations (hard fail).
    """

    def __init__(self, schema: dict[str, Any], schema_name: str | None = None):
        """
        Initialize schema validator.

        Args:
            schema: JSON Schema dict (the `schema` member of a json_schema response format)
            schema_name: Name used in error details
        """
        self.schema = schema
        self.schema_name = schema_name
        self._validator = Draft7Validator(schema)

    def validate(self, data: dict) -> None:
        """
        Validate data against the schema.

        Raises:
            SchemaValidationError: If data doesn't conform to schema
        """
        errors = list(self._validator.iter_errors(data))

        if errors:
            error_messages = []
            for error in errors[:10]:  # Limit to first 10 errors
                path = ".".join(str(p) for p in error.path) if error.path else "root"
                error_messages.append(f"{path}: {error.message}")

            validation_failures_total.labels(
                stage="schema", error_type="schema_violation"
            ).inc()
            raise SchemaValidationError(
                f"JSON Schema validation failed with {len(errors)} error(s)",
                validation_errors=error_messages,
                schema_name=self.schema_name
            )

        logger.debug("Validated structured response", schema_name=self.schema_name)
