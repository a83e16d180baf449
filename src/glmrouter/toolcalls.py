"""Helpers shared by the structured and inline tool-call channels."""

from __future__ import annotations

import json
import uuid
from typing import Any


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Parse *text* as a single JSON object.

    Returns ``None`` for anything that is not a complete object: partial
    buffers, arrays, scalars and empty input.
    """
    text = text.strip()
    if not text:
        return None
    try:
        value = json.loads(text)
    except ValueError:
        return None
    if not isinstance(value, dict):
        return None
    return value


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def new_call_id(prefix: str = "call") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:24]}"


class DedupRegistry:
    """Identity keys of tool calls already handed to the caller.

    Keys are ``name:canonical-arguments`` for every call and
    ``name:index`` for inline calls that declare a position.
    """

    def __init__(self) -> None:
        self._argument_keys: set[str] = set()
        self._position_keys: set[str] = set()

    def claim(
        self,
        name: str,
        arguments: dict[str, Any],
        position: int | None = None,
    ) -> bool:
        """Register a call and return whether it may be emitted."""
        key = f"{name}:{canonical_json(arguments)}"
        if key in self._argument_keys:
            return False
        if position is not None:
            position_key = f"{name}:{position}"
            if position_key in self._position_keys:
                return False
            self._position_keys.add(position_key)
        self._argument_keys.add(key)
        return True

    def __len__(self) -> int:
        return len(self._argument_keys)
