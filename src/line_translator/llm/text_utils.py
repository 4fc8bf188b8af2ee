"""
Text processing utilities for the LLM layer.

The delimited wire format is one line per item, so embedded line breaks are
encoded as an inline `\\N` marker before submission and restored afterwards.
Optional numeric labels ("12. text") pin each output line to its input.
"""

import re
from typing import Iterable, Optional

from line_translator.models.llm_models import ChatMessage

MULTILINE_MARKER = "\\N"
REDACTED_PLACEHOLDER = "-"

_NUMBER_LABEL_PATTERN = re.compile(r"^(\d+\.)?\s*(.*)", re.DOTALL)
_MARKER_PATTERN = re.compile(r"\s*\\N\s*")

# Chat framing overhead, per message and per reply
_TOKENS_PER_MESSAGE = 4
_TOKENS_PER_REPLY = 2


def encode_line(line: str, index: int = 0, offset: int = 0, prefix_number: bool = False) -> str:
    """
    Prepare a line for the single-line wire format.

    Embedded newlines become ` \\N ` and, when prefix_number is set, the
    1-based absolute position (offset + index + 1) is prepended.

    Examples:
        >>> encode_line("Hello\\nWorld")
        'Hello \\\\N World'
        >>> encode_line("Hi", index=2, offset=10, prefix_number=True)
        '13. Hi'
    """
    line = line.replace("\n", f" {MULTILINE_MARKER} ")
    if prefix_number:
        line = label_line(line, offset + index + 1)
    return line


def label_line(text: str, label: int | str) -> str:
    """Prefix text with a numeric label: `"{label}. {text}"`."""
    return f"{label}. {text}"


def split_number_label(text: str) -> tuple[Optional[int], str]:
    """
    Split a leading "N." label from a line.

    Returns:
        (number or None when unlabelled, stripped text)

    Examples:
        >>> split_number_label("7. hola")
        (7, 'hola')
        >>> split_number_label("hola")
        (None, 'hola')
    """
    match = _NUMBER_LABEL_PATTERN.match(text)
    number = int(match.group(1)[:-1]) if match.group(1) else None
    return number, match.group(2).strip()


def restore_line_breaks(text: str) -> str:
    """Turn inline `\\N` markers back into real newlines."""
    return _MARKER_PATTERN.sub("\n", text)


def collapse_newlines(text: str) -> str:
    """Join a multi-line answer into a single line."""
    return " ".join(text.split("\n"))


def split_output_lines(text: str) -> list[str]:
    """Split a delimited response into its non-empty lines."""
    return [line for line in text.split("\n") if len(line) > 0]


def seconds_to_timestamp(seconds: float) -> str:
    """
    Format seconds as an SRT timestamp.

    Examples:
        >>> seconds_to_timestamp(3723.5)
        '01:02:03,500'
    """
    total_ms = int(round(seconds * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def count_tokens_approximate(text: str) -> int:
    """
    Rough approximation of token count for text.

    Uses a simple heuristic of ~3 characters per token. This is NOT accurate
    but sufficient for usage accounting when a streamed response carries no
    usage block, and for sizing max_tokens on structured requests.

    Args:
        text: Text to estimate tokens for

    Returns:
        Approximate token count (at least 1)
    """
    return max(1, len(text) // 3)


def count_message_tokens(messages: Iterable[ChatMessage]) -> int:
    """
    Approximate prompt tokens for a chat conversation.

    Adds the per-message framing overhead to the content estimate; tends to
    overcount slightly.
    """
    total = 0
    for message in messages:
        total += _TOKENS_PER_MESSAGE + count_tokens_approximate(message.content)
    return total + _TOKENS_PER_REPLY
