"""Streaming chat example: an interactive ChatGLM session with tool calls.

Demonstrates:
- Building a ChatProvider from a prefixed model id
- Describing tools with ToolDefinition.from_function
- Consuming text, reasoning and tool-call events as they stream
- Feeding tool results back so the conversation can continue
- Cancelling a stream that runs past --max-seconds

Usage:
    Add CHATGLM_API_KEY=... to .env, then:
    uv run --env-file=.env examples/stream_chat.py --model chatglm-coding:glm-4.6
    uv run --env-file=.env examples/stream_chat.py --model chatglm-general:glm-4.6 --trace --verbose
"""

import argparse
import asyncio
import logging
from datetime import datetime, timezone

from glmrouter.events import ReasoningEvent, StreamCompleteEvent, TextEvent, ToolCallEvent
from glmrouter.logconfig import configure_logging
from glmrouter.message import (
    Message,
    MessageRole,
    ToolCallRequestMessage,
    ToolCallResultMessage,
)
from glmrouter.provider import ChatProvider
from glmrouter.tools import ToolDefinition


def current_time() -> str:
    """Return the current time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def add(a: int, b: int) -> str:
    """Add two integers."""
    return str(a + b)


TOOLS = {f.__name__: f for f in (current_time, add)}


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from glmrouter.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


async def run_turn(
    provider: ChatProvider,
    model: str,
    transcript: list[Message],
    tools: list[ToolDefinition],
    max_seconds: float,
) -> list[ToolCallEvent]:
    cancel = asyncio.Event()
    timer = asyncio.get_running_loop().call_later(max_seconds, cancel.set)
    calls: list[ToolCallEvent] = []
    text = ""
    completed = False
    print("Assistant: ", end="", flush=True)
    async for event in provider.stream_chat(model, transcript, tools=tools, cancel=cancel):
        if isinstance(event, TextEvent):
            text += event.text
            print(event.text, end="", flush=True)
        elif isinstance(event, ReasoningEvent):
            print(f"\x1b[2m{event.text}\x1b[0m", end="", flush=True)
        elif isinstance(event, ToolCallEvent):
            print(f"\n[tool] {event.name}({event.arguments})", flush=True)
            calls.append(event)
        elif isinstance(event, StreamCompleteEvent):
            completed = True
            print(f"\n({event.finish_reason}, ~{event.output_tokens} tokens)\n")
    timer.cancel()
    if not completed:
        print("\n(cancelled)\n")

    if calls:
        transcript.append(ToolCallRequestMessage(content=text, tool_calls=calls))
        for call in calls:
            func = TOOLS.get(call.name)
            result = func(**call.arguments) if func else f"Unknown tool {call.name}"
            transcript.append(ToolCallResultMessage(tool_call_id=call.call_id, content=result))
    elif text:
        transcript.append(Message(role=MessageRole.ASSISTANT, content=text))
    return calls


async def main():
    parser = argparse.ArgumentParser(description="Streaming ChatGLM chat")
    parser.add_argument("--model", default="chatglm-coding:glm-4.6")
    parser.add_argument("--no-reasoning", action="store_true")
    parser.add_argument("--max-seconds", type=float, default=120.0)
    parser.add_argument("--trace", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)
    if args.trace:
        setup_tracing("stream-chat")

    provider = ChatProvider.for_model(
        args.model, supports_reasoning=not args.no_reasoning,
    )
    tools = [ToolDefinition.from_function(f) for f in TOOLS.values()]
    transcript: list[Message] = [
        Message(role=MessageRole.SYSTEM, content="You are a concise assistant."),
    ]

    print("Streaming chat (Ctrl-D to quit)\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        transcript.append(Message(role=MessageRole.USER, content=user_input))
        while await run_turn(provider, args.model, transcript, tools, args.max_seconds):
            pass

    print(provider.usage.summary())


if __name__ == "__main__":
    asyncio.run(main())
