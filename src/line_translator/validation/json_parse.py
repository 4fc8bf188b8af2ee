"""
JSON parse stage.

Turn the raw content of a structured response into a Python dict. Any
failure is a hard fail: the batch goes to the delimited fallback.
"""

import json
from typing import Any, Optional

import structlog

from line_translator.monitoring.metrics import validation_failures_total
from line_translator.validation.exceptions import JSONParseError

logger = structlog.get_logger(__name__)


class JSONParseStage:
    """
    Parse a JSON string to dict.

    Raises JSONParseError on malformed JSON (hard fail).
    """

    def validate(self, content: str, parsed: Optional[Any] = None) -> dict:
        """
        Parse JSON content from a completion response.

        Args:
            content: Raw JSON string from the response
            parsed: Payload already decoded by the client, used when present

        Returns:
            Parsed dict representation

        Raises:
            JSONParseError: If content is not a valid JSON object
        """
        if parsed is None:
            if not content or not content.strip():
                validation_failures_total.labels(
                    stage="json_parse", error_type="empty_content"
                ).inc()
                raise JSONParseError(
                    "Response content is empty or whitespace-only",
                    raw_content=content,
                    parse_error="Empty content"
                )

            try:
                parsed = json.loads(content)
            except json.JSONDecodeError as e:
                validation_failures_total.labels(
                    stage="json_parse", error_type="json_decode_error"
                ).inc()
                raise JSONParseError(
                    f"Failed to parse response as JSON: {e.msg}",
                    raw_content=content,
                    parse_error=f"{e.msg} at line {e.lineno} col {e.colno}"
                ) from e

        if not isinstance(parsed, dict):
            validation_failures_total.labels(
                stage="json_parse", error_type="not_json_object"
            ).inc()
            raise JSONParseError(
                f"Response is not a JSON object (got {type(parsed).__name__})",
                raw_content=content,
                parse_error=f"Expected dict, got {type(parsed).__name__}"
            )

        logger.debug("Parsed structured response", top_level_keys=len(parsed))
        return parsed
