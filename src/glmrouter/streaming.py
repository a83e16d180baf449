"""Streaming primitives for chat-completion payloads.

:func:`parse_chunk` normalises one decoded ``data:`` payload into a
:class:`StreamChunk`.  The :class:`ToolCallAccumulator` reassembles
structured tool calls whose arguments arrive in fragments across multiple
chunks, emitting each call as soon as its arguments form a complete JSON
object.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from glmrouter.errors import InvalidToolCallPayload
from glmrouter.events import ToolCallEvent
from glmrouter.toolcalls import DedupRegistry, new_call_id, parse_json_object

logger = logging.getLogger(__name__)

UNKNOWN_TOOL = "unknown_tool"


class FinishReason(str, Enum):
    STOP = "stop"
    TOOL_CALLS = "tool_calls"


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class ReasoningFragment:
    text: str
    id: str | None = None
    metadata: Any = None


@dataclass
class StreamChunk:
    """Normalised streaming chunk from any provider."""

    content_delta: str | None = None
    reasoning: ReasoningFragment | None = None
    tool_call_fragments: list[ToolCallFragment] | None = None
    finish_reason: FinishReason | str | None = None


def estimate_tokens(text: str) -> int:
    """Coarse token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def parse_chunk(payload: Any) -> StreamChunk:
    """Extract the fragments carried by one payload.

    Every field is optional; a missing or mistyped field yields no
    fragment of that kind rather than an error.
    """
    if not isinstance(payload, dict):
        return StreamChunk()
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return StreamChunk()
    choice = choices[0]
    if not isinstance(choice, dict):
        return StreamChunk()
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        delta = {}

    content = delta.get("content")
    if content is not None and not isinstance(content, str):
        content = str(content)

    return StreamChunk(
        content_delta=content or None,
        reasoning=_parse_reasoning(choice, delta),
        tool_call_fragments=_parse_tool_calls(delta.get("tool_calls")),
        finish_reason=_parse_finish_reason(choice.get("finish_reason")),
    )


def _parse_reasoning(choice: dict, delta: dict) -> ReasoningFragment | None:
    thinking = choice.get("thinking")
    if thinking is None:
        thinking = delta.get("thinking")
    if thinking is None:
        thinking = delta.get("reasoning_content")

    if isinstance(thinking, str):
        return ReasoningFragment(text=thinking) if thinking else None
    if isinstance(thinking, dict):
        text = thinking.get("text")
        if not isinstance(text, str) or not text:
            return None
        thinking_id = thinking.get("id")
        return ReasoningFragment(
            text=text,
            id=thinking_id if isinstance(thinking_id, str) else None,
            metadata=thinking.get("metadata"),
        )
    return None


def _parse_tool_calls(raw: Any) -> list[ToolCallFragment] | None:
    if not isinstance(raw, list) or not raw:
        return None
    fragments = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        index = entry.get("index")
        if not isinstance(index, int) or isinstance(index, bool):
            index = 0
        call_id = entry.get("id")
        function = entry.get("function")
        if not isinstance(function, dict):
            function = {}
        name = function.get("name")
        arguments = function.get("arguments")
        fragments.append(ToolCallFragment(
            index=index,
            call_id=call_id if isinstance(call_id, str) and call_id else None,
            name=name if isinstance(name, str) and name else None,
            arguments_delta=arguments if isinstance(arguments, str) else None,
        ))
    return fragments or None


def _parse_finish_reason(raw: Any) -> FinishReason | str | None:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return FinishReason(raw)
    except ValueError:
        return raw


@dataclass
class PendingToolCall:
    """A structured tool call still receiving argument fragments."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments: str = ""


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments.

    Calls are keyed by their stream index.  Once a call has been emitted
    its index is marked completed and later fragments for it are ignored.
    """

    def __init__(self, registry: DedupRegistry) -> None:
        self._registry = registry
        self._pending: dict[int, PendingToolCall] = {}
        self._completed: set[int] = set()

    @property
    def pending(self) -> dict[int, PendingToolCall]:
        return self._pending

    def is_completed(self, index: int) -> bool:
        return index in self._completed

    def feed(self, fragment: ToolCallFragment) -> list[ToolCallEvent]:
        if fragment.index in self._completed:
            return []
        if fragment.index not in self._pending:
            self._pending[fragment.index] = PendingToolCall(index=fragment.index)
        tc = self._pending[fragment.index]
        if fragment.call_id is not None:
            tc.call_id = fragment.call_id
        if fragment.name is not None:
            tc.name = fragment.name
        if fragment.arguments_delta is not None:
            tc.arguments += fragment.arguments_delta

        # The name may trail the arguments on some backends; wait for it.
        if tc.name is None:
            return []
        arguments = parse_json_object(tc.arguments)
        if arguments is None:
            return []
        return self._complete(tc, arguments)

    def flush(self, strict: bool) -> Iterator[ToolCallEvent]:
        """Yield every pending call whose arguments parse, in index order.

        Calls ahead of a failing index are yielded before the error.  An
        empty argument buffer counts as ``{}``, also with *strict*.

        With *strict*, an unparseable call raises
        :class:`InvalidToolCallPayload`; otherwise it is dropped.
        """
        for index in sorted(self._pending):
            tc = self._pending[index]
            if tc.arguments.strip():
                arguments = parse_json_object(tc.arguments)
            else:
                arguments = {}
            if arguments is None:
                if strict:
                    logger.error(
                        f"Invalid JSON for tool call {index}: {tc.arguments[:200]!r}"
                    )
                    raise InvalidToolCallPayload(index, tc.arguments)
                logger.debug(f"Dropping incomplete tool call {index}")
                continue
            yield from self._complete(tc, arguments)

    def clear(self) -> None:
        self._pending.clear()
        self._completed.clear()

    def _complete(
        self, tc: PendingToolCall, arguments: dict[str, Any]
    ) -> list[ToolCallEvent]:
        del self._pending[tc.index]
        self._completed.add(tc.index)
        name = tc.name or UNKNOWN_TOOL
        if not self._registry.claim(name, arguments):
            logger.debug(f"Skipping duplicate tool call {name} at index {tc.index}")
            return []
        return [ToolCallEvent(
            call_id=tc.call_id or new_call_id("call"),
            name=name,
            arguments=arguments,
        )]
