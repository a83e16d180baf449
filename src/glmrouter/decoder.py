"""Decoding of a chat-completion response body into stream events.

:class:`StreamDecoder` owns one :class:`~glmrouter.session.Session` and
drives the pipeline for every frame it reads::

    bytes -> FrameReader -> parse_chunk -> InlineToolCallParser (content)
                                        -> ToolCallAccumulator (tool_calls)

Events are yielded as soon as they are produced.  After the stream ends,
fails or is cancelled the session is replaced with a fresh one, so the
same decoder can serve the next request.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterator

from glmrouter.errors import NoResponseBody
from glmrouter.events import ReasoningEvent, StreamCompleteEvent, StreamEvent
from glmrouter.session import Session
from glmrouter.sse import FrameReader
from glmrouter.streaming import FinishReason, StreamChunk, estimate_tokens, parse_chunk

logger = logging.getLogger(__name__)


class StreamDecoder:
    """Turns a response byte stream into ordered, deduplicated events.

    Args:
        supports_reasoning: Whether the consumer can display reasoning
            fragments.  When ``False`` they are skipped without side
            effects.
    """

    def __init__(self, supports_reasoning: bool = True):
        self.supports_reasoning = supports_reasoning
        self.session = Session()
        self.last_output_tokens = 0

    @property
    def output_tokens(self) -> int:
        """Output-size estimate of the stream currently being decoded."""
        return self.session.output_tokens

    def reset(self) -> None:
        self.session = Session()

    def process_payload(self, payload: str) -> list[StreamEvent]:
        """Decode one ``data:`` payload."""
        return list(self._payload_events(payload))

    def process_chunk(self, chunk: StreamChunk) -> list[StreamEvent]:
        return list(self._chunk_events(chunk))

    def finish(self) -> list[StreamEvent]:
        """Flush what the stream left pending at a clean end."""
        return list(self._finish_events())

    async def decode(
        self,
        body: AsyncIterable[bytes] | None,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Decode *body* until ``[DONE]``, end of bytes or cancellation.

        A cancelled decode stops without flushing pending calls and
        yields no :class:`StreamCompleteEvent`.

        Raises:
            NoResponseBody: If *body* is ``None``.
            InvalidToolCallPayload: If the server requested tool calls
                while one of them was still unparseable.
        """
        if body is None:
            raise NoResponseBody()

        reader = FrameReader()
        chunks = body.__aiter__()
        try:
            done = False
            while not done:
                if cancel is not None and cancel.is_set():
                    logger.debug("Stream cancelled; discarding pending state")
                    return
                try:
                    raw = await anext(chunks)
                except StopAsyncIteration:
                    frames = reader.close()
                    done = True
                else:
                    frames = reader.feed(raw)

                for frame in frames:
                    if frame.done:
                        done = True
                        break
                    for event in self._payload_events(frame.payload):
                        yield event

            for event in self._finish_events():
                yield event
            yield StreamCompleteEvent(
                finish_reason=self.session.finish_reason,
                output_tokens=self.session.output_tokens,
            )
        finally:
            self.last_output_tokens = self.session.output_tokens
            self.reset()

    def _payload_events(self, payload: str) -> Iterator[StreamEvent]:
        try:
            data = json.loads(payload)
        except ValueError:
            logger.debug(f"Dropping malformed stream payload: {payload[:200]!r}")
            return
        if not isinstance(data, dict):
            logger.debug(f"Dropping non-object stream payload: {payload[:200]!r}")
            return
        yield from self._chunk_events(parse_chunk(data))

    def _chunk_events(self, chunk: StreamChunk) -> Iterator[StreamEvent]:
        session = self.session

        if chunk.reasoning is not None and self.supports_reasoning:
            yield ReasoningEvent(
                text=chunk.reasoning.text,
                id=chunk.reasoning.id,
                metadata=chunk.reasoning.metadata,
            )

        if chunk.content_delta:
            session.output_tokens += estimate_tokens(chunk.content_delta)
            yield from session.inline.feed(chunk.content_delta)

        for fragment in chunk.tool_call_fragments or []:
            if fragment.arguments_delta:
                session.output_tokens += estimate_tokens(fragment.arguments_delta)
            yield from session.accumulator.feed(fragment)

        reason = chunk.finish_reason
        if reason is None:
            return
        session.finish_reason = reason.value if isinstance(reason, FinishReason) else reason
        if reason is FinishReason.TOOL_CALLS:
            yield from session.accumulator.flush(strict=True)
        elif reason is FinishReason.STOP:
            yield from session.accumulator.flush(strict=False)

    def _finish_events(self) -> Iterator[StreamEvent]:
        yield from self.session.accumulator.flush(strict=False)
        yield from self.session.inline.finish()
