"""
Prompt builder for completion requests.

Responsible for:
- Rendering the system instruction (Jinja2 template, overridable)
- Assembling the conversation: system + initial prompts + context + user turn
- Constructing the CompletionRequest with the run's sampling parameters
"""

from typing import Any, Optional

import structlog
from jinja2 import Environment, StrictUndefined

from line_translator.models.enums import MessageRole
from line_translator.models.llm_models import ChatMessage, CompletionRequest
from line_translator.models.options import Language, TranslatorOptions


logger = structlog.get_logger(__name__)

DEFAULT_INSTRUCTION_TEMPLATE = (
    "Translate {% if source %}{{ source }} {% endif %}to {{ target }}"
)


class PromptBuilder:
    """
    Build chat conversations for translation requests.

    The system instruction is rendered once; every request then reuses the
    same prefix (system + initial prompts) followed by the strategy's context
    messages and the user turn.
    """

    def __init__(
        self,
        language: Language,
        options: TranslatorOptions,
        instruction_template: str = DEFAULT_INSTRUCTION_TEMPLATE,
    ):
        """
        Initialize prompt builder.

        Args:
            language: Source/target language pair
            options: Run options (model, sampling, initial prompts, instruction override)
            instruction_template: Jinja2 template for the system instruction,
                rendered with `source` and `target`
        """
        self.language = language
        self.options = options

        self.jinja_env = Environment(
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,  # We're generating prompts, not HTML
            undefined=StrictUndefined,
        )

        if options.system_instruction:
            self.system_instruction = options.system_instruction
        else:
            template = self.jinja_env.from_string(instruction_template)
            self.system_instruction = template.render(
                source=language.source,
                target=language.target,
            )

        logger.info(
            "PromptBuilder initialized",
            system_instruction=self.system_instruction,
            initial_prompts=len(options.initial_prompts),
            model=options.model,
        )

    def build_messages(
        self,
        context: list[ChatMessage],
        user_content: Optional[str] = None,
    ) -> list[ChatMessage]:
        """
        Assemble the conversation for one request.

        Args:
            context: Prior exchanges rendered by the active strategy
            user_content: The batch payload; None when the payload travels in
                the response schema instead (object mode)
        """
        messages: list[ChatMessage] = []
        if self.system_instruction:
            messages.append(ChatMessage(role=MessageRole.SYSTEM, content=self.system_instruction))
        messages.extend(self.options.initial_prompts)
        messages.extend(context)
        if user_content is not None:
            messages.append(ChatMessage(role=MessageRole.USER, content=user_content))
        return messages

    def build_request(
        self,
        messages: list[ChatMessage],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        response_schema: Optional[dict[str, Any]] = None,
        schema_name: Optional[str] = None,
    ) -> CompletionRequest:
        """
        Wrap messages into a CompletionRequest with the run's parameters.

        Args:
            messages: Conversation from build_messages()
            model: Override model (fallback model on refusal)
            max_tokens: Generated token bound; defaults to the run's cap
            response_schema: JSON Schema for structured modes
            schema_name: Name attached to the schema
        """
        if max_tokens is None:
            max_tokens = self.options.max_tokens_per_request
        elif self.options.max_tokens_per_request is not None:
            max_tokens = min(max_tokens, self.options.max_tokens_per_request)

        return CompletionRequest(
            messages=messages,
            model=model or self.options.model,
            temperature=self.options.temperature,
            top_p=self.options.top_p,
            max_tokens=max_tokens,
            response_schema=response_schema,
            schema_name=schema_name,
            stream=self.options.stream,
        )
