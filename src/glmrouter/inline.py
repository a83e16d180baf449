"""Tool calls embedded in plain assistant text.

Some backends do not use the structured ``tool_calls`` field and instead
write calls into the content stream between sentinel tokens::

    <|tool_call_begin|>search:0<|tool_call_argument_begin|>{"q": "x"}<|tool_call_end|>

The header before the argument marker is ``name`` optionally followed by
``:index``.  A header may also be closed directly by the end marker, in
which case the call has no arguments.

:class:`InlineToolCallParser` splits incoming text into visible text and
tool calls.  Markers may be cut at any offset between two chunks, so the
parser keeps the unconsumed tail of each chunk as ``carryover`` until the
next one arrives.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from glmrouter.events import TextEvent, ToolCallEvent
from glmrouter.streaming import UNKNOWN_TOOL
from glmrouter.toolcalls import DedupRegistry, new_call_id, parse_json_object

logger = logging.getLogger(__name__)

TOOL_CALL_BEGIN = "<|tool_call_begin|>"
TOOL_CALL_ARGUMENT_BEGIN = "<|tool_call_argument_begin|>"
TOOL_CALL_END = "<|tool_call_end|>"
TOOL_CALLS_SECTION_BEGIN = "<|tool_calls_section_begin|>"
TOOL_CALLS_SECTION_END = "<|tool_calls_section_end|>"
TOOL_OUTPUTS_SECTION_BEGIN = "<|tool_outputs_section_begin|>"
TOOL_OUTPUTS_SECTION_END = "<|tool_outputs_section_end|>"

# Never shown to the caller.
CONTROL_TOKENS = (
    TOOL_CALL_BEGIN,
    TOOL_CALL_ARGUMENT_BEGIN,
    TOOL_CALL_END,
    TOOL_CALLS_SECTION_BEGIN,
    TOOL_CALLS_SECTION_END,
    TOOL_OUTPUTS_SECTION_BEGIN,
    TOOL_OUTPUTS_SECTION_END,
)

MAX_MARKER_LENGTH = max(len(token) for token in CONTROL_TOKENS)

_CONTROL_TOKENS = re.compile("|".join(re.escape(token) for token in CONTROL_TOKENS))
_HEADER = re.compile(r"^([A-Za-z0-9_\-.]+)(?::(\d+))?")


def strip_control_tokens(text: str) -> str:
    """Remove tool-call sentinels and section markers from visible text."""
    return _CONTROL_TOKENS.sub("", text)


def parse_header(header: str) -> tuple[str | None, int | None]:
    match = _HEADER.match(header.strip())
    if match is None:
        return None, None
    index = match.group(2)
    return match.group(1), int(index) if index is not None else None


@dataclass
class InlineCall:
    """The inline call whose arguments are currently being captured."""

    name: str | None = None
    index: int | None = None
    arguments: str = ""
    emitted: bool = False


@dataclass
class InlineParserState:
    carryover: str = ""
    active: InlineCall | None = None


class InlineToolCallParser:
    """Separates visible text from sentinel-delimited tool calls.

    Events come out in the order their bytes went in.  Calls are emitted
    as soon as their arguments parse, even before the end marker arrives,
    and are registered with the shared :class:`DedupRegistry` so that the
    same call is never emitted twice.

    Args:
        registry: Dedup registry shared with the structured channel.
    """

    def __init__(self, registry: DedupRegistry) -> None:
        self._registry = registry
        self.state = InlineParserState()

    def feed(self, text: str) -> list[TextEvent | ToolCallEvent]:
        state = self.state
        data = state.carryover + text
        state.carryover = ""
        out: list[TextEvent | ToolCallEvent] = []

        while data:
            active = state.active
            if active is None:
                begin = data.find(TOOL_CALL_BEGIN)
                if begin == -1:
                    keep = _partial_token_length(data)
                    self._emit_text(out, data[:len(data) - keep])
                    state.carryover = data[len(data) - keep:]
                    break

                self._emit_text(out, data[:begin])
                rest = data[begin + len(TOOL_CALL_BEGIN):]
                arg_at = rest.find(TOOL_CALL_ARGUMENT_BEGIN)
                end_at = rest.find(TOOL_CALL_END)
                if arg_at == -1 and end_at == -1:
                    # Header still incomplete; wait for a delimiter.
                    state.carryover = TOOL_CALL_BEGIN + rest
                    break

                if arg_at != -1 and (end_at == -1 or arg_at < end_at):
                    name, index = parse_header(rest[:arg_at])
                    state.active = InlineCall(name=name, index=index)
                    data = rest[arg_at + len(TOOL_CALL_ARGUMENT_BEGIN):]
                else:
                    name, index = parse_header(rest[:end_at])
                    self._emit_call(out, InlineCall(name=name, index=index), {})
                    data = rest[end_at + len(TOOL_CALL_END):]
                continue

            end_at = data.find(TOOL_CALL_END)
            if end_at == -1:
                keep = _partial_marker_length(data, TOOL_CALL_END)
                active.arguments += data[:len(data) - keep]
                state.carryover = data[len(data) - keep:]
                if not active.emitted:
                    arguments = parse_json_object(active.arguments)
                    if arguments is not None:
                        logger.debug(
                            f"Inline tool call {active.name!r} complete before end marker"
                        )
                        self._emit_call(out, active, arguments)
                break

            active.arguments += data[:end_at]
            data = data[end_at + len(TOOL_CALL_END):]
            if not active.emitted:
                arguments = parse_json_object(active.arguments)
                if arguments is None:
                    logger.debug(
                        f"Dropping malformed inline tool call {active.name!r}"
                    )
                else:
                    self._emit_call(out, active, arguments)
            state.active = None

        return out

    def finish(self) -> list[TextEvent | ToolCallEvent]:
        """Flush whatever the stream left behind and reset."""
        state = self.state
        out: list[TextEvent | ToolCallEvent] = []
        if state.active is not None:
            if not state.active.emitted:
                arguments = parse_json_object(state.active.arguments)
                if arguments is not None:
                    self._emit_call(out, state.active, arguments)
                else:
                    logger.debug(
                        f"Dropping unterminated inline tool call {state.active.name!r}"
                    )
        elif state.carryover.startswith(TOOL_CALL_BEGIN):
            logger.debug("Dropping inline tool call header without arguments")
        else:
            self._emit_text(out, state.carryover)
        self.reset()
        return out

    def reset(self) -> None:
        self.state = InlineParserState()

    @staticmethod
    def _emit_text(out: list, text: str) -> None:
        text = strip_control_tokens(text)
        if not text:
            return
        if out and isinstance(out[-1], TextEvent):
            out[-1].text += text
        else:
            out.append(TextEvent(text=text))

    def _emit_call(self, out: list, call: InlineCall, arguments: dict) -> None:
        name = call.name or UNKNOWN_TOOL
        if not self._registry.claim(name, arguments, position=call.index):
            logger.debug(f"Skipping duplicate inline tool call {name}")
            return
        call.emitted = True
        out.append(ToolCallEvent(
            call_id=new_call_id("tct"), name=name, arguments=arguments,
        ))


def _partial_token_length(text: str) -> int:
    """Length of the longest suffix of *text* that is a strict prefix of a control token."""
    return max(_partial_marker_length(text, token) for token in CONTROL_TOKENS)


def _partial_marker_length(text: str, marker: str) -> int:
    """Length of the longest suffix of *text* that is a strict prefix of *marker*."""
    for k in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:k]):
            return k
    return 0
