"""
LLM-specific data models for the request/response cycle.

These models are the boundary of the completion and moderation ports. They
abstract away provider-specific details so the engine never sees raw HTTP
payloads.
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict

from line_translator.models.enums import MessageRole


class ChatMessage(BaseModel):
    """A single chat message."""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: MessageRole
    content: str


class CompletionRequest(BaseModel):
    """
    Standardized chat completion request.

    Built by a StructuredOutputStrategy and sent to any BaseCompletionClient
    implementation.
    """
    model_config = ConfigDict(frozen=True)

    messages: list[ChatMessage] = Field(..., min_length=1, description="Conversation sent to the model")
    model: str = Field(..., description="Model name/identifier (e.g., 'gpt-4o-mini')")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0, description="Sampling temperature")
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Nucleus sampling parameter")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="Maximum tokens to generate")
    response_schema: Optional[Dict[str, Any]] = Field(
        default=None,
        description="JSON Schema constraining the response (structured modes only)"
    )
    schema_name: Optional[str] = Field(default=None, description="Name attached to the response schema")
    stream: bool = Field(default=False, description="Whether to stream incremental deltas")
    extra_params: Dict[str, Any] = Field(
        default_factory=dict,
        description="Provider-specific parameters passed through unchanged"
    )


class CompletionUsage(BaseModel):
    """Token usage reported by the service (or estimated when streaming)."""
    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    cached_tokens: int = Field(default=0, ge=0)
    total_tokens: Optional[int] = Field(default=None, ge=0)

    @property
    def total(self) -> int:
        if self.total_tokens is not None:
            return self.total_tokens
        return self.prompt_tokens + self.completion_tokens


class CompletionResponse(BaseModel):
    """
    Response from a completion request.

    Contains the generated text, the parsed structured payload when a
    response schema was requested, and the refusal text when the model
    declined to answer.
    """
    model_config = ConfigDict(frozen=True)

    content: str = Field(default="", description="Generated text (JSON string in structured modes)")
    parsed: Optional[Any] = Field(default=None, description="Decoded structured payload, if any")
    refusal: Optional[str] = Field(default=None, description="Refusal text when the model declined")
    model: str = Field(default="", description="Model that produced the response")
    finish_reason: Optional[str] = Field(default=None, description="'stop', 'length', ...")
    usage: CompletionUsage = Field(default_factory=CompletionUsage)
    latency_ms: int = Field(default=0, ge=0, description="Generation latency in milliseconds")


class ModerationResult(BaseModel):
    """Result of a moderation check."""
    model_config = ConfigDict(frozen=True)

    flagged: bool = False
    categories: Dict[str, bool] = Field(default_factory=dict)
    category_scores: Dict[str, float] = Field(default_factory=dict)
