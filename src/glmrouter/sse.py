"""Server-Sent Events framing for chat-completion streams.

Turns raw response bytes into ``data:`` payloads. Everything else on the
wire (comments, ``event:``/``id:`` fields, keep-alive blank lines) is
transport noise and is dropped.
"""

from __future__ import annotations

import codecs
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

DATA_PREFIX = "data:"
DONE_PAYLOAD = "[DONE]"


@dataclass
class Frame:
    """One logical protocol line: a payload, or the end-of-stream marker."""

    payload: str | None = None
    done: bool = False


class FrameReader:
    """Incremental line splitter over a UTF-8 byte stream."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[Frame]:
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [frame for frame in map(_parse_line, lines) if frame is not None]

    def close(self) -> list[Frame]:
        """Flush the decoder and treat a trailing partial line as complete."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        frames = []
        for line in tail.split("\n"):
            frame = _parse_line(line)
            if frame is not None:
                frames.append(frame)
        return frames


def _parse_line(line: str) -> Frame | None:
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):]
    if data.startswith(" "):
        data = data[1:]
    if data.strip() == DONE_PAYLOAD:
        return Frame(done=True)
    return Frame(payload=data)


async def read_frames(stream: AsyncIterable[bytes]) -> AsyncIterator[Frame]:
    """Yield frames from an async byte stream as they complete."""
    reader = FrameReader()
    async for chunk in stream:
        for frame in reader.feed(chunk):
            yield frame
    for frame in reader.close():
        yield frame
