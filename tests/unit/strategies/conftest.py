"""Strategy test fixtures."""

import pytest

from line_translator.llm.prompt_builder import PromptBuilder
from line_translator.models.options import TranslatorOptions


@pytest.fixture
def make_strategy(french):
    """Factory fixture: strategy_cls(builder, options) with options overrides."""
    def _create(strategy_cls, **overrides):
        options = TranslatorOptions(**overrides).for_strategy()
        return strategy_cls(PromptBuilder(french, options), options)
    return _create
