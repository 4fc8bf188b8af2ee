"""
Translation orchestration.

Main Components:
    - TranslationEngine: Batch translation run with shrink/grow/fallback
    - BatchSizeLadder: Adaptive batch size selection
    - ContextWindow: History selection and redaction
    - UsageAccount: Token and cost accounting

Usage:
    >>> engine = TranslationEngine(Language(target="French"), TranslatorOptions(), client)
    >>> async for result in engine.translate_lines(lines):
    ...     print(result.final_transform)
"""

from line_translator.engine.context import ContextWindow
from line_translator.engine.ladder import BatchSizeLadder
from line_translator.engine.translator import TranslationEngine
from line_translator.engine.usage import PRICE_PER_1K_TOKENS, UsageAccount

__all__ = [
    "BatchSizeLadder",
    "ContextWindow",
    "PRICE_PER_1K_TOKENS",
    "TranslationEngine",
    "UsageAccount",
]
