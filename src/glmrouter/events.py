"""Events emitted while decoding a chat-completion stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class TextEvent(StreamEvent):
    """Visible assistant text, with control tokens already removed."""

    text: str = ""


@dataclass
class ReasoningEvent(StreamEvent):
    """A reasoning ("thinking") fragment from backends that expose one."""

    text: str = ""
    id: str | None = None
    metadata: Any = None


@dataclass
class ToolCallEvent(StreamEvent):
    """A complete tool invocation with parsed arguments."""

    call_id: str = ""
    name: str = ""
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class StreamCompleteEvent(StreamEvent):
    """Final event of a stream that ended normally.

    ``finish_reason`` is the last terminal marker the server sent, or
    ``None`` when the stream ended without one.
    """

    finish_reason: str | None = None
    output_tokens: int = 0
