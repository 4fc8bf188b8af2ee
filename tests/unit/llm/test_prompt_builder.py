"""Unit tests for PromptBuilder."""

import pytest
from jinja2 import UndefinedError

from line_translator.llm.prompt_builder import PromptBuilder
from line_translator.models.enums import MessageRole
from line_translator.models.llm_models import ChatMessage
from line_translator.models.options import Language, TranslatorOptions


class TestSystemInstruction:

    def test_default_with_source(self, french):
        builder = PromptBuilder(french, TranslatorOptions())
        assert builder.system_instruction == "Translate English to French"

    def test_default_without_source(self):
        builder = PromptBuilder(Language(target="German"), TranslatorOptions())
        assert builder.system_instruction == "Translate to German"

    def test_override(self, french):
        options = TranslatorOptions(system_instruction="Be terse. Translate into French.")
        builder = PromptBuilder(french, options)

        assert builder.system_instruction == "Be terse. Translate into French."

    def test_custom_template(self, french):
        builder = PromptBuilder(
            french,
            TranslatorOptions(),
            instruction_template="You translate subtitles into {{ target }}.",
        )
        assert builder.system_instruction == "You translate subtitles into French."

    def test_unknown_template_variable_rejected(self, french):
        with pytest.raises(UndefinedError):
            PromptBuilder(french, TranslatorOptions(), instruction_template="{{ tone }}")


class TestBuildMessages:

    def test_order(self, french):
        options = TranslatorOptions(initial_prompts=[
            ChatMessage(role=MessageRole.USER, content="Use informal register"),
        ])
        builder = PromptBuilder(french, options)
        context = [
            ChatMessage(role=MessageRole.USER, content="1. a"),
            ChatMessage(role=MessageRole.ASSISTANT, content="1. x"),
        ]

        messages = builder.build_messages(context, "2. b")

        assert [m.content for m in messages] == [
            "Translate English to French",
            "Use informal register",
            "1. a",
            "1. x",
            "2. b",
        ]

    def test_no_user_turn(self, french):
        builder = PromptBuilder(french, TranslatorOptions())
        messages = builder.build_messages([])

        assert [m.role for m in messages] == ["system"]

    def test_empty_instruction_omitted(self, french):
        builder = PromptBuilder(french, TranslatorOptions(), instruction_template="")
        assert [m.role for m in builder.build_messages([], "x")] == ["user"]


class TestBuildRequest:

    def test_run_parameters(self, french):
        options = TranslatorOptions(model="gpt-4o", temperature=0.2, top_p=0.9, stream=True)
        builder = PromptBuilder(french, options)

        request = builder.build_request(builder.build_messages([], "1. a"))

        assert request.model == "gpt-4o"
        assert request.temperature == 0.2
        assert request.top_p == 0.9
        assert request.stream is True
        assert request.max_tokens is None
        assert request.response_schema is None

    def test_model_override(self, french):
        builder = PromptBuilder(french, TranslatorOptions())
        request = builder.build_request(builder.build_messages([], "1. a"), model="gpt-4o")

        assert request.model == "gpt-4o"

    @pytest.mark.parametrize(
        "cap,requested,expected",
        [
            (None, None, None),
            (500, None, 500),
            (None, 2000, 2000),
            (500, 2000, 500),
            (5000, 2000, 2000),
        ],
    )
    def test_max_tokens(self, french, cap, requested, expected):
        builder = PromptBuilder(french, TranslatorOptions(max_tokens_per_request=cap))
        request = builder.build_request(builder.build_messages([], "x"), max_tokens=requested)

        assert request.max_tokens == expected

    def test_schema_attached(self, french):
        builder = PromptBuilder(french, TranslatorOptions())
        schema = {"type": "object"}
        request = builder.build_request(
            builder.build_messages([]),
            response_schema=schema,
            schema_name="translation_object",
        )

        assert request.response_schema == schema
        assert request.schema_name == "translation_object"
