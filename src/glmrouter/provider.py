import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from openai import APIError, APIStatusError, AsyncOpenAI

from glmrouter.config import (
    ModelInfo,
    ProviderConfig,
    extract_model_id,
    get_default_provider,
    get_provider,
    get_provider_by_model_id,
    resolve_api_key,
)
from glmrouter.decoder import StreamDecoder
from glmrouter.errors import GLMRouterError, TokenBudgetExceeded, UpstreamHttpError
from glmrouter.events import StreamEvent
from glmrouter.instrumentation import completion_span, record_error, record_usage
from glmrouter.message import Message, estimate_messages_tokens, validate_tool_pairing
from glmrouter.streaming import estimate_tokens
from glmrouter.tools import ToolDefinition, ToolMode, convert_tools, estimate_tools_tokens
from glmrouter.usage import UsageTracker

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7


class ChatProvider:
    """Streams chat completions from an OpenAI-compatible endpoint.

    The response body is read as raw bytes and decoded by a fresh
    :class:`StreamDecoder` per request, so concurrent requests on the same
    provider never share decoding state.

    Args:
        provider: Provider config or provider id.  Defaults to the
            default provider.
        api_key: API key.  Falls back to the provider's environment
            variable.
        timeout: Request timeout in seconds.
        http_client: Optional ``httpx.AsyncClient`` for the underlying
            OpenAI client.
        usage: Tracker that receives one record per completed request.
        supports_reasoning: Whether reasoning fragments are surfaced.
    """

    def __init__(
        self,
        provider: ProviderConfig | str | None = None,
        api_key: str | None = None,
        *,
        timeout: float = 600.0,
        http_client: httpx.AsyncClient | None = None,
        usage: UsageTracker | None = None,
        supports_reasoning: bool = True,
    ):
        if isinstance(provider, str):
            config = get_provider(provider)
            if config is None:
                raise ValueError(f"Unknown provider: {provider!r}")
            provider = config
        self.provider = provider or get_default_provider()
        self.api_key = resolve_api_key(self.provider, api_key)
        self.usage = usage if usage is not None else UsageTracker()
        self.supports_reasoning = supports_reasoning
        self.client = AsyncOpenAI(
            base_url=self.provider.base_url,
            api_key=self.api_key or "MISSING",
            max_retries=0,
            timeout=timeout,
            http_client=http_client,
        )

    @classmethod
    def for_model(cls, model_id: str, **kwargs) -> "ChatProvider":
        """Build a provider for a possibly prefixed model id."""
        return cls(get_provider_by_model_id(model_id), **kwargs)

    async def list_models(self) -> list[ModelInfo]:
        """List the endpoint's models.

        Without an API key a single placeholder entry is returned so the
        provider stays visible to pickers.
        """
        p = self.provider
        if not self.api_key:
            logger.info(f"Provider {p.id} has no API key configured")
            return [ModelInfo(
                id=f"{p.id}:__no_api_key__",
                name=f"{p.name} (API key not configured)",
                family=p.family,
                max_input_tokens=p.max_input_tokens,
                max_output_tokens=p.default_max_tokens,
                tooltip=f"{p.name} - API key not configured",
            )]
        try:
            page = await self.client.models.list()
        except APIError as e:
            logger.error(f"Failed to fetch models from {p.id}: {e}")
            return []
        return [ModelInfo.for_provider(m.id, p) for m in page.data]

    def count_tokens(self, text: str | Message) -> int:
        if isinstance(text, Message):
            text = text.content
        return estimate_tokens(text)

    def build_request(
        self,
        model: str | ModelInfo,
        messages: list[Message],
        *,
        tools: list[ToolDefinition] | None = None,
        tool_mode: ToolMode = ToolMode.AUTO,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model_options: dict[str, Any] | None = None,
        max_input_tokens: int | None = None,
    ) -> tuple[dict[str, Any], int]:
        """Validate a chat request and build its body.

        Returns the request body and the estimated input token count.

        Raises:
            InvalidRequest: If tool calls and results are not paired.
            InvalidToolDefinition: If a tool cannot be sent.
            TokenBudgetExceeded: If the estimated input is over the
                model's limit.
        """
        if isinstance(model, ModelInfo):
            model_id = model.id
            max_input = model.max_input_tokens
            max_output = model.max_output_tokens
        else:
            model_id = model
            max_input = self.provider.max_input_tokens
            max_output = self.provider.default_max_tokens
        if max_input_tokens is not None:
            max_input = max_input_tokens

        validate_tool_pairing(messages)
        tool_fields = convert_tools(tools, tool_mode)

        input_tokens = (
            estimate_messages_tokens(messages)
            + estimate_tools_tokens(tool_fields.get("tools"))
        )
        limit = max(1, max_input)
        if input_tokens > limit:
            logger.error(
                f"Message exceeds token limit: {input_tokens} > {limit}"
            )
            raise TokenBudgetExceeded(input_tokens, limit)

        options = model_options or {}
        if max_tokens is None:
            max_tokens = options.get("max_tokens") or DEFAULT_REQUEST_MAX_TOKENS
        if temperature is None:
            temperature = options.get("temperature", DEFAULT_TEMPERATURE)

        body: dict[str, Any] = {
            "model": extract_model_id(model_id, self.provider),
            "messages": [m.model_dump() for m in messages],
            "stream": True,
            "max_tokens": min(max_tokens, max_output),
            "temperature": temperature,
        }
        stop = options.get("stop")
        if isinstance(stop, (str, list)):
            body["stop"] = stop
        for key in ("frequency_penalty", "presence_penalty"):
            value = options.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                body[key] = value
        body.update(tool_fields)
        return body, input_tokens

    async def stream_chat(
        self,
        model: str | ModelInfo,
        messages: list[Message],
        *,
        tools: list[ToolDefinition] | None = None,
        tool_mode: ToolMode = ToolMode.AUTO,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model_options: dict[str, Any] | None = None,
        max_input_tokens: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Send a chat request and yield decoded events as they arrive.

        Setting *cancel* stops reading at the next chunk boundary without
        emitting pending tool calls.

        Raises:
            MissingApiKey: If no API key is configured.
            UpstreamHttpError: If the endpoint answers with an error status.
            InvalidToolCallPayload: If a requested tool call is malformed.
        """
        resolve_api_key(self.provider, self.api_key, required=True)
        body, input_tokens = self.build_request(
            model, messages,
            tools=tools, tool_mode=tool_mode,
            max_tokens=max_tokens, temperature=temperature,
            model_options=model_options,
            max_input_tokens=max_input_tokens,
        )
        model_id = model.id if isinstance(model, ModelInfo) else model
        decoder = StreamDecoder(supports_reasoning=self.supports_reasoning)

        async with completion_span(self.provider.id, body["model"]) as span:
            try:
                async with self.client.chat.completions.with_streaming_response.create(
                    **body
                ) as response:
                    async for event in decoder.decode(
                        response.iter_bytes(), cancel=cancel,
                    ):
                        yield event
            except APIStatusError as e:
                error = UpstreamHttpError(
                    e.status_code, _response_text(e), self.provider.name,
                )
                logger.error(
                    f"Chat request to {self.provider.id} failed: {e.status_code}"
                )
                record_error(span, error)
                raise error from e
            except (GLMRouterError, APIError) as e:
                logger.error(f"Chat request to {self.provider.id} failed: {e}")
                record_error(span, e)
                raise

            output_tokens = decoder.last_output_tokens
            record_usage(span, input_tokens, output_tokens, response_model=body["model"])
            self.usage.record_request(
                self.provider.id, model_id, input_tokens, output_tokens,
            )


def _response_text(error: APIStatusError) -> str:
    try:
        return error.response.text
    except httpx.ResponseNotRead:
        return error.message
