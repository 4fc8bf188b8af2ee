"""
OpenAI-compatible client implementation.

Communicates with any OpenAI-compatible chat completions API using httpx
AsyncClient. Supports:
- Plain and schema-constrained (json_schema response format) completions
- Server-sent event streaming with a final usage chunk
- The moderation endpoint
- Connection pooling via a persistent AsyncClient

Retries are NOT handled here: every failure is mapped onto
line_translator.llm.exceptions and left to RetryPolicy.
"""

import json
import time
from typing import Any, Dict, Optional

import httpx
import structlog

from line_translator.config import Settings
from line_translator.llm.base_client import (
    BaseCompletionClient,
    BaseModerationClient,
    DeltaCallback,
)
from line_translator.llm.exceptions import (
    LLMConnectionError,
    LLMFatalError,
    LLMRateLimitError,
    LLMServerError,
    LLMStreamParseError,
    LLMTimeoutError,
)
from line_translator.llm.text_utils import count_message_tokens, count_tokens_approximate
from line_translator.models.llm_models import (
    CompletionRequest,
    CompletionResponse,
    CompletionUsage,
    ModerationResult,
)
from line_translator.monitoring.metrics import llm_latency_seconds


logger = structlog.get_logger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


def map_status_error(status_code: int, error_text: str) -> Exception:
    """
    Map an HTTP error status onto the client exception hierarchy.

    429 -> LLMRateLimitError, 5xx -> LLMServerError, other 4xx -> LLMFatalError
    """
    details = {"status": status_code, "error": error_text[:500]}
    if status_code == 429:
        return LLMRateLimitError("Rate limited by service", details=details)
    if status_code >= 500:
        return LLMServerError(f"Service error: {status_code}", details=details)
    return LLMFatalError(f"Client error: {status_code}", details=details)


class OpenAIClient(BaseCompletionClient, BaseModerationClient):
    """
    OpenAI-compatible completion and moderation client using httpx.

    API Endpoints:
    - POST /chat/completions: Completion (optionally streamed, optionally json_schema)
    - POST /moderations: Moderation
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        timeout: int = 120,
        moderation_model: str = "omni-moderation-latest",
        connection_limits: Optional[httpx.Limits] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            api_key: Bearer token (None for unauthenticated local servers)
            base_url: API root including the version segment
            timeout: Request timeout in seconds
            moderation_model: Model for the moderation endpoint
            connection_limits: httpx connection pool limits
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.moderation_model = moderation_model
        self._api_key = api_key
        self._transport = transport

        if connection_limits is None:
            connection_limits = httpx.Limits(
                max_keepalive_connections=5,
                max_connections=10,
                keepalive_expiry=30.0
            )
        self._connection_limits = connection_limits
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            "OpenAI client initialized",
            base_url=self.base_url,
            timeout=timeout,
            authenticated=api_key is not None,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "OpenAIClient":
        return cls(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.OPENAI_TIMEOUT,
            **kwargs,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
                limits=self._connection_limits,
                transport=self._transport,
            )
            logger.debug("Created new httpx AsyncClient")
        return self._client

    def _build_payload(self, request: CompletionRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": [message.model_dump() for message in request.messages],
            "stream": request.stream,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        if request.response_schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": request.schema_name or "translation",
                    "strict": True,
                    "schema": request.response_schema,
                },
            }
        if request.stream:
            payload["stream_options"] = {"include_usage": True}
        payload.update(request.extra_params)
        return payload

    async def complete(
        self,
        request: CompletionRequest,
        on_delta: Optional[DeltaCallback] = None,
    ) -> CompletionResponse:
        """
        Run a chat completion via POST /chat/completions.

        Response (non-streamed):
        {
            "model": "gpt-4o-mini",
            "choices": [{"message": {"content": "...", "refusal": null}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 50, "completion_tokens": 20, "total_tokens": 70,
                      "prompt_tokens_details": {"cached_tokens": 0}}
        }
        """
        start_time = time.time()
        payload = self._build_payload(request)

        logger.debug(
            "Sending completion request",
            model=request.model,
            messages=len(request.messages),
            stream=request.stream,
            has_schema=request.response_schema is not None,
        )

        success = "false"
        try:
            client = await self._get_client()
            if request.stream:
                response = await self._complete_stream(client, payload, request, on_delta, start_time)
            else:
                http_response = await client.post("/chat/completions", json=payload)
                if http_response.status_code >= 400:
                    raise map_status_error(http_response.status_code, http_response.text)
                try:
                    data = http_response.json()
                except json.JSONDecodeError as e:
                    raise LLMServerError(
                        "Invalid JSON response from service",
                        details={"parse_error": str(e)}
                    ) from e
                response = self._parse_completion(data, request, start_time)
            success = "true"
            return response

        except httpx.TimeoutException as e:
            logger.warning("Completion request timeout", timeout=self.timeout, error=str(e))
            raise LLMTimeoutError(
                f"Request timeout after {self.timeout}s",
                details={"timeout": self.timeout}
            ) from e

        except httpx.TransportError as e:
            logger.warning("Completion network error", error=str(e))
            raise LLMConnectionError(
                f"Network error: {str(e)}",
                details={"error_type": type(e).__name__}
            ) from e

        finally:
            llm_latency_seconds.labels(model=request.model, success=success).observe(
                time.time() - start_time
            )

    def _parse_completion(
        self,
        data: Dict[str, Any],
        request: CompletionRequest,
        start_time: float,
    ) -> CompletionResponse:
        choices = data.get("choices") or []
        if not choices:
            raise LLMServerError("Response carried no choices", details={"response": str(data)[:500]})

        message = choices[0].get("message") or {}
        content = message.get("content") or ""
        refusal = message.get("refusal") or None

        return CompletionResponse(
            content=content,
            parsed=self._parse_structured(content, request, refusal),
            refusal=refusal,
            model=data.get("model", request.model),
            finish_reason=choices[0].get("finish_reason"),
            usage=self._parse_usage(data.get("usage")),
            latency_ms=int((time.time() - start_time) * 1000),
        )

    async def _complete_stream(
        self,
        client: httpx.AsyncClient,
        payload: Dict[str, Any],
        request: CompletionRequest,
        on_delta: Optional[DeltaCallback],
        start_time: float,
    ) -> CompletionResponse:
        content_parts: list[str] = []
        refusal_parts: list[str] = []
        usage_data: Optional[Dict[str, Any]] = None
        finish_reason: Optional[str] = None
        model = request.model

        async with client.stream("POST", "/chat/completions", json=payload) as http_response:
            if http_response.status_code >= 400:
                body = await http_response.aread()
                raise map_status_error(http_response.status_code, body.decode("utf-8", "replace"))

            async for line in http_response.aiter_lines():
                line = line.strip()
                if not line.startswith(SSE_DATA_PREFIX):
                    continue
                data = line[len(SSE_DATA_PREFIX):].strip()
                if data == SSE_DONE:
                    break

                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError as e:
                    raise LLMStreamParseError(
                        f"Could not JSON parse stream message: {e.msg}",
                        details={"chunk": data[:200]}
                    ) from e

                model = chunk.get("model", model)
                if chunk.get("usage"):
                    usage_data = chunk["usage"]
                for choice in chunk.get("choices") or []:
                    delta = choice.get("delta") or {}
                    if delta.get("content"):
                        content_parts.append(delta["content"])
                        if on_delta is not None:
                            on_delta(delta["content"])
                    if delta.get("refusal"):
                        refusal_parts.append(delta["refusal"])
                    if choice.get("finish_reason"):
                        finish_reason = choice["finish_reason"]

        content = "".join(content_parts)
        refusal = "".join(refusal_parts) or None

        if usage_data is None:
            # Some compatible servers ignore stream_options; estimate instead
            prompt_tokens = count_message_tokens(request.messages)
            completion_tokens = count_tokens_approximate(content) if content else 0
            usage = CompletionUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
        else:
            usage = self._parse_usage(usage_data)

        return CompletionResponse(
            content=content,
            parsed=self._parse_structured(content, request, refusal),
            refusal=refusal,
            model=model,
            finish_reason=finish_reason,
            usage=usage,
            latency_ms=int((time.time() - start_time) * 1000),
        )

    @staticmethod
    def _parse_structured(
        content: str,
        request: CompletionRequest,
        refusal: Optional[str],
    ) -> Optional[Any]:
        """Decode the JSON payload of a schema-constrained response, if any."""
        if request.response_schema is None or refusal or not content:
            return None
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            # Left to the strategy's validation stage
            return None

    @staticmethod
    def _parse_usage(usage: Optional[Dict[str, Any]]) -> CompletionUsage:
        if not usage:
            return CompletionUsage()
        details = usage.get("prompt_tokens_details") or {}
        return CompletionUsage(
            prompt_tokens=usage.get("prompt_tokens") or 0,
            completion_tokens=usage.get("completion_tokens") or 0,
            cached_tokens=details.get("cached_tokens") or 0,
            total_tokens=usage.get("total_tokens"),
        )

    async def moderate(self, text: str) -> ModerationResult:
        """
        Moderate text via POST /moderations.

        Response:
        {"results": [{"flagged": true, "categories": {"violence": true},
                      "category_scores": {"violence": 0.91}}]}
        """
        try:
            client = await self._get_client()
            http_response = await client.post(
                "/moderations",
                json={"model": self.moderation_model, "input": text},
            )
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(
                f"Moderation timeout after {self.timeout}s",
                details={"timeout": self.timeout}
            ) from e
        except httpx.TransportError as e:
            raise LLMConnectionError(
                f"Network error: {str(e)}",
                details={"error_type": type(e).__name__}
            ) from e

        if http_response.status_code >= 400:
            raise map_status_error(http_response.status_code, http_response.text)

        try:
            result = http_response.json()["results"][0]
        except (json.JSONDecodeError, KeyError, IndexError) as e:
            raise LLMServerError(
                "Malformed moderation response",
                details={"parse_error": str(e)}
            ) from e

        return ModerationResult(
            flagged=bool(result.get("flagged")),
            categories={k: bool(v) for k, v in (result.get("categories") or {}).items()},
            category_scores={
                k: float(v) for k, v in (result.get("category_scores") or {}).items()
            },
        )

    async def close(self):
        """Close the HTTP client connection."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed OpenAI client connection")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url={self.base_url}, timeout={self.timeout}s)"
