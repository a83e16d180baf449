import json

import pytest

from glmrouter.decoder import StreamDecoder
from glmrouter.events import StreamCompleteEvent, TextEvent, ToolCallEvent


# ---------------------------------------------------------------------------
# Payload builders (mirror the OpenAI chat.completion.chunk shape)
# ---------------------------------------------------------------------------

def make_chunk(
    content: str | None = None,
    tool_calls: list[dict] | None = None,
    finish_reason: str | None = None,
    **delta_extra,
) -> dict:
    """One ``chat.completion.chunk`` payload with a single choice."""
    delta: dict = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    delta.update(delta_extra)
    choice: dict = {"index": 0, "delta": delta}
    if finish_reason is not None:
        choice["finish_reason"] = finish_reason
    return {"object": "chat.completion.chunk", "choices": [choice]}


def make_tool_delta(
    index: int = 0,
    name: str | None = None,
    arguments: str | None = None,
    call_id: str | None = None,
) -> dict:
    entry: dict = {"index": index, "type": "function"}
    if call_id is not None:
        entry["id"] = call_id
    function: dict = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    entry["function"] = function
    return entry


def sse(*payloads, done: bool = True) -> bytes:
    """Encode payloads as ``data:`` lines, ending with ``[DONE]``."""
    lines = []
    for p in payloads:
        data = p if isinstance(p, str) else json.dumps(p, ensure_ascii=False)
        lines.append(f"data: {data}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def split_bytes(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


async def byte_stream(*chunks: bytes):
    for chunk in chunks:
        yield chunk


async def collect(decoder: StreamDecoder, *chunks: bytes, cancel=None) -> list:
    return [e async for e in decoder.decode(byte_stream(*chunks), cancel=cancel)]


# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------

def texts(events) -> str:
    return "".join(e.text for e in events if isinstance(e, TextEvent))


def tool_calls(events) -> list[tuple[str, dict]]:
    return [(e.name, e.arguments) for e in events if isinstance(e, ToolCallEvent)]


def without_complete(events) -> list:
    return [e for e in events if not isinstance(e, StreamCompleteEvent)]


@pytest.fixture
def decoder():
    return StreamDecoder()
