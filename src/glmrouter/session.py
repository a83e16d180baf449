from __future__ import annotations

from dataclasses import dataclass, field

from glmrouter.inline import InlineToolCallParser
from glmrouter.streaming import ToolCallAccumulator
from glmrouter.toolcalls import DedupRegistry


@dataclass
class Session:
    """Mutable state of one in-flight decode.

    Both tool-call channels share ``registry`` so that a call seen through
    either of them is emitted once.  A session belongs to a single request
    and is discarded when the stream ends, errors or is cancelled.
    """

    registry: DedupRegistry = field(default_factory=DedupRegistry)
    accumulator: ToolCallAccumulator = field(init=False)
    inline: InlineToolCallParser = field(init=False)
    output_tokens: int = 0
    finish_reason: str | None = None

    def __post_init__(self) -> None:
        self.accumulator = ToolCallAccumulator(self.registry)
        self.inline = InlineToolCallParser(self.registry)
