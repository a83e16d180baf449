import inspect
import json
import re
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field

from glmrouter.errors import InvalidToolDefinition
from glmrouter.streaming import estimate_tokens

MAX_TOOLS = 128

_TOOL_NAME = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

_JSON_TYPES = {
    'str': 'string',
    'int': 'integer',
    'float': 'number',
    'bool': 'boolean',
    'NoneType': 'null',
    'dict': 'object',
    'list': 'array',
    'tuple': 'array',  # closest equivalent
    'set': 'array',    # closest equivalent
}


class ToolMode(str, Enum):
    AUTO = "auto"
    REQUIRED = "required"


class ToolDefinition(BaseModel):
    """A function the model may call, described by a JSON schema."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    @classmethod
    def from_function(cls, func: Callable) -> "ToolDefinition":
        """Describe *func* from its signature and docstring."""
        signature = inspect.signature(func)
        properties = {}
        required = []
        for param_name, param in signature.parameters.items():
            annotation = param.annotation
            type_name = getattr(annotation, "__name__", str(annotation))
            properties[param_name] = {
                "type": _JSON_TYPES.get(type_name, 'string'),
                "description": ""
            }
            if param.default is inspect.Parameter.empty:
                required.append(param_name)

        return cls(
            name=func.__name__,
            description=inspect.getdoc(func) or "",
            parameters={
                "type": "object",
                "properties": properties,
                "required": required,
            },
        )

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            }
        }


def validate_tools(tools: list[ToolDefinition]) -> None:
    if len(tools) > MAX_TOOLS:
        raise InvalidToolDefinition(
            f"Cannot have more than {MAX_TOOLS} tools per request."
        )
    seen = set()
    for t in tools:
        if not _TOOL_NAME.match(t.name):
            raise InvalidToolDefinition(
                f"Invalid tool name {t.name!r}: use letters, digits, "
                "underscores or hyphens (at most 64 characters)."
            )
        if t.name in seen:
            raise InvalidToolDefinition(f"Duplicate tool name {t.name!r}")
        seen.add(t.name)


def convert_tools(
    tools: list[ToolDefinition] | None, mode: ToolMode = ToolMode.AUTO
) -> dict[str, Any]:
    """Build the ``tools``/``tool_choice`` request fields.

    Returns an empty dict when there are no tools, so the result can be
    merged into a request body unconditionally.
    """
    if not tools:
        return {}
    validate_tools(tools)
    if mode is ToolMode.REQUIRED:
        if len(tools) == 1:
            tool_choice: Any = {
                "type": "function",
                "function": {"name": tools[0].name},
            }
        else:
            tool_choice = "required"
    else:
        tool_choice = "auto"
    return {
        "tools": [t.to_openai() for t in tools],
        "tool_choice": tool_choice,
    }


def estimate_tools_tokens(tool_schemas: list[dict[str, Any]] | None) -> int:
    if not tool_schemas:
        return 0
    return estimate_tokens(json.dumps(tool_schemas))
