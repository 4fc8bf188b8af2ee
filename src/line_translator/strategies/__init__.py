"""
Wire encodings for translation batches.

Main Components:
    - StructuredOutputStrategy: Interface the engine drives
    - DelimitedTextStrategy: Blank-line separated plain text
    - ArrayStrategy: {"inputs": [...]} -> {"outputs": [...]}
    - ObjectStrategy: One schema key per line
    - TimestampStrategy: Timed cues with boundary validation

Usage:
    >>> strategy = create_strategy(builder, options)
    >>> request = strategy.encode(batch, context)
"""

from line_translator.llm.prompt_builder import PromptBuilder
from line_translator.models.enums import StructuredMode
from line_translator.models.options import TranslatorOptions
from line_translator.strategies.array import ArrayStrategy
from line_translator.strategies.base import StructuredOutputStrategy
from line_translator.strategies.delimited import DelimitedTextStrategy
from line_translator.strategies.object import ObjectStrategy
from line_translator.strategies.timestamp import TimestampStrategy

_STRATEGIES = {
    StructuredMode.NONE: DelimitedTextStrategy,
    StructuredMode.ARRAY: ArrayStrategy,
    StructuredMode.OBJECT: ObjectStrategy,
    StructuredMode.TIMESTAMP: TimestampStrategy,
}


def create_strategy(builder: PromptBuilder, options: TranslatorOptions) -> StructuredOutputStrategy:
    """
    Build the strategy for options.structured_mode.

    Array and object strategies get a delimited text fallback sharing the
    same prompt builder and options.
    """
    strategy = _STRATEGIES[options.structured_mode](builder, options)
    if options.structured_mode in (StructuredMode.ARRAY, StructuredMode.OBJECT):
        strategy.fallback = DelimitedTextStrategy(builder, options)
    return strategy


__all__ = [
    "ArrayStrategy",
    "DelimitedTextStrategy",
    "ObjectStrategy",
    "StructuredOutputStrategy",
    "TimestampStrategy",
    "create_strategy",
]
