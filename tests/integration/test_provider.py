"""ChatProvider against a mocked HTTP endpoint.

Requests go through the real OpenAI client; only the transport is
replaced by ``httpx.MockTransport``.
"""

import json

import httpx
import pytest

from glmrouter.config import ModelInfo, get_default_provider
from glmrouter.errors import (
    InvalidToolCallPayload,
    InvalidToolDefinition,
    MissingApiKey,
    TokenBudgetExceeded,
    UpstreamHttpError,
)
from glmrouter.events import StreamCompleteEvent, TextEvent, ToolCallEvent
from glmrouter.inline import TOOL_CALL_ARGUMENT_BEGIN as ARG
from glmrouter.inline import TOOL_CALL_BEGIN as BEGIN
from glmrouter.inline import TOOL_CALL_END as END
from glmrouter.message import Message, MessageRole
from glmrouter.provider import ChatProvider
from glmrouter.tools import MAX_TOOLS, ToolDefinition, ToolMode

from tests.conftest import make_chunk, make_tool_delta, sse, texts, tool_calls


USER_HELLO = [Message(role=MessageRole.USER, content="hello")]


class Endpoint:
    """Records requests and answers them with canned responses."""

    def __init__(self, *, status: int = 200, body: bytes = b"", json_body=None):
        self.status = status
        self.body = body
        self.json_body = json_body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.json_body is not None:
            return httpx.Response(self.status, json=self.json_body)
        return httpx.Response(
            self.status,
            headers={"content-type": "text/event-stream"},
            content=self.body,
        )

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def make_provider(endpoint: Endpoint, api_key: str | None = "test-key", **kwargs) -> ChatProvider:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    return ChatProvider(api_key=api_key, http_client=http_client, **kwargs)


async def collect(provider: ChatProvider, model="glm-4.6", messages=USER_HELLO, **kwargs) -> list:
    return [e async for e in provider.stream_chat(model, messages, **kwargs)]


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class TestStreamChat:
    @pytest.mark.asyncio
    async def test_streams_text_and_tool_calls(self):
        endpoint = Endpoint(body=sse(
            make_chunk(content="Let me check. "),
            make_chunk(content=f'{BEGIN}lookup:0{ARG}{{"key": "a"}}{END}'),
            make_chunk(tool_calls=[make_tool_delta(1, name="fetch", arguments='{"url": "u"}', call_id="c9")]),
            make_chunk(finish_reason="tool_calls"),
        ))
        events = await collect(make_provider(endpoint))

        assert texts(events) == "Let me check. "
        assert tool_calls(events) == [("lookup", {"key": "a"}), ("fetch", {"url": "u"})]
        calls = [e for e in events if isinstance(e, ToolCallEvent)]
        assert calls[0].call_id.startswith("tct_")
        assert calls[1].call_id == "c9"
        assert events[-1] == StreamCompleteEvent(finish_reason="tool_calls", output_tokens=events[-1].output_tokens)

    @pytest.mark.asyncio
    async def test_request_body(self):
        endpoint = Endpoint(body=sse(make_chunk(content="ok")))
        provider = make_provider(endpoint)
        await collect(
            provider,
            model="chatglm-coding:glm-4.6",
            tools=[ToolDefinition(name="ping")],
            tool_mode=ToolMode.REQUIRED,
            model_options={
                "max_tokens": 100000,
                "stop": ["\n\n"],
                "presence_penalty": 0.5,
                "frequency_penalty": True,
                "top_k": 3,
            },
        )

        request = endpoint.requests[-1]
        assert request.url.path.endswith("/chat/completions")
        assert request.headers["authorization"] == "Bearer test-key"

        body = endpoint.last_json
        assert body["model"] == "glm-4.6"
        assert body["stream"] is True
        assert body["messages"] == [{"role": "user", "content": "hello"}]
        assert body["max_tokens"] == 8192
        assert body["temperature"] == 0.7
        assert body["stop"] == ["\n\n"]
        assert body["presence_penalty"] == 0.5
        assert "frequency_penalty" not in body
        assert "top_k" not in body
        assert body["tool_choice"] == {"type": "function", "function": {"name": "ping"}}

    @pytest.mark.asyncio
    async def test_explicit_sampling_arguments(self):
        endpoint = Endpoint(body=sse(make_chunk(content="ok")))
        await collect(make_provider(endpoint), max_tokens=50, temperature=0.1)

        body = endpoint.last_json
        assert body["max_tokens"] == 50
        assert body["temperature"] == 0.1
        assert "tools" not in body

    @pytest.mark.asyncio
    async def test_usage_recorded(self):
        endpoint = Endpoint(body=sse(make_chunk(content="abcdefgh")))
        provider = make_provider(endpoint)
        await collect(provider)

        usage = provider.usage.get("chatglm-coding", "glm-4.6")
        assert usage.request_count == 1
        assert usage.total_input_tokens == 2
        assert usage.total_output_tokens == 2

    @pytest.mark.asyncio
    async def test_reasoning_disabled(self):
        endpoint = Endpoint(body=sse(
            make_chunk(thinking="hidden"),
            make_chunk(content="shown"),
        ))
        events = await collect(make_provider(endpoint, supports_reasoning=False))
        assert [type(e) for e in events] == [TextEvent, StreamCompleteEvent]

    @pytest.mark.asyncio
    async def test_invalid_tool_call_propagates(self):
        endpoint = Endpoint(body=sse(
            make_chunk(content="partial"),
            make_chunk(tool_calls=[make_tool_delta(0, name="f", arguments="{oops")]),
            make_chunk(finish_reason="tool_calls"),
        ))
        received = []
        with pytest.raises(InvalidToolCallPayload):
            async for event in make_provider(endpoint).stream_chat("glm-4.6", USER_HELLO):
                received.append(event)
        assert received == [TextEvent(text="partial")]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_http_error_status(self):
        endpoint = Endpoint(status=401, json_body={"error": {"message": "bad key"}})
        with pytest.raises(UpstreamHttpError) as exc_info:
            await collect(make_provider(endpoint))

        err = exc_info.value
        assert err.status_code == 401
        assert "bad key" in err.body
        assert err.provider == "ChatGLM Coding"
        assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    async def test_token_budget_checked_before_sending(self):
        endpoint = Endpoint(body=sse(make_chunk(content="never")))
        tiny = ModelInfo(
            id="chatglm-coding:glm-4.6", name="tiny", family="chatglm",
            max_input_tokens=5, max_output_tokens=10,
        )
        long_prompt = [Message(role=MessageRole.USER, content="x" * 100)]

        with pytest.raises(TokenBudgetExceeded) as exc_info:
            await collect(make_provider(endpoint), model=tiny, messages=long_prompt)

        assert exc_info.value.estimated == 25
        assert exc_info.value.limit == 5
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_explicit_input_limit(self):
        endpoint = Endpoint(body=sse(make_chunk(content="never")))
        with pytest.raises(TokenBudgetExceeded):
            await collect(make_provider(endpoint), max_input_tokens=1)
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_too_many_tools(self):
        endpoint = Endpoint(body=sse())
        tools = [ToolDefinition(name=f"t{i}") for i in range(MAX_TOOLS + 1)]
        with pytest.raises(InvalidToolDefinition):
            await collect(make_provider(endpoint), tools=tools)
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("CHATGLM_API_KEY", raising=False)
        endpoint = Endpoint(body=sse())
        with pytest.raises(MissingApiKey):
            await collect(make_provider(endpoint, api_key=None))
        assert endpoint.requests == []

    def test_unknown_provider_id(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            ChatProvider("nope", api_key="k")


# ---------------------------------------------------------------------------
# Model listing
# ---------------------------------------------------------------------------


class TestListModels:
    @pytest.mark.asyncio
    async def test_lists_endpoint_models(self):
        endpoint = Endpoint(json_body={
            "object": "list",
            "data": [
                {"id": "glm-4.6", "object": "model", "created": 0, "owned_by": "zhipu"},
                {"id": "glm-4.5-air", "object": "model", "created": 0, "owned_by": "zhipu"},
            ],
        })
        models = await make_provider(endpoint).list_models()

        assert [m.id for m in models] == ["chatglm-coding:glm-4.6", "chatglm-coding:glm-4.5-air"]
        assert endpoint.requests[-1].url.path.endswith("/models")

    @pytest.mark.asyncio
    async def test_placeholder_without_api_key(self, monkeypatch):
        monkeypatch.delenv("CHATGLM_API_KEY", raising=False)
        endpoint = Endpoint(json_body={"object": "list", "data": []})
        models = await make_provider(endpoint, api_key=None).list_models()

        assert len(models) == 1
        assert models[0].id == "chatglm-coding:__no_api_key__"
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_endpoint_error_returns_empty(self):
        endpoint = Endpoint(status=500, json_body={"error": {"message": "down"}})
        assert await make_provider(endpoint).list_models() == []


def test_for_model_picks_prefixed_provider():
    provider = ChatProvider.for_model("chatglm-general:glm-4.6", api_key="k")
    assert provider.provider.id == "chatglm-general"
    assert provider.count_tokens("abcde") == 2
    assert provider.count_tokens(Message(role=MessageRole.USER, content="abcd")) == 1
    assert get_default_provider().id == "chatglm-coding"
