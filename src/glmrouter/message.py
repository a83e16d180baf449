import json
from enum import Enum

from pydantic import BaseModel, field_serializer

from glmrouter.errors import InvalidRequest
from glmrouter.events import ToolCallEvent
from glmrouter.streaming import estimate_tokens


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class Message(BaseModel):
    role: MessageRole
    content: str = ""

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


class ToolCallRequestMessage(Message):
    role: MessageRole = MessageRole.ASSISTANT
    tool_calls: list[ToolCallEvent]

    @field_serializer("tool_calls")
    def serialize_tool_calls(self, tool_calls: list[ToolCallEvent]) -> list[dict]:
        return [
            {
                "id": t.call_id,
                "type": "function",
                "function": {
                    "arguments": json.dumps(t.arguments),
                    "name": t.name
                }
            }
            for t in tool_calls
        ]


class ToolCallResultMessage(Message):
    role: MessageRole = MessageRole.TOOL
    tool_call_id: str


def estimate_messages_tokens(messages: list[Message]) -> int:
    """Rough input size of *messages*, counting text content only."""
    return sum(estimate_tokens(m.content) for m in messages if m.content)


def validate_tool_pairing(messages: list[Message]) -> None:
    """Check that every tool call is answered before the conversation moves on.

    The tool results for an assistant tool-call message must follow it
    directly, one ``tool`` message per call id.

    Raises:
        InvalidRequest: If a call has no matching result, or a result
            refers to a call that was not requested.
    """
    pending: set[str] = set()
    for position, message in enumerate(messages):
        if isinstance(message, ToolCallResultMessage):
            if message.tool_call_id not in pending:
                raise InvalidRequest(
                    f"Tool result at position {position} does not match a "
                    f"preceding tool call ({message.tool_call_id!r})"
                )
            pending.discard(message.tool_call_id)
            continue
        if pending:
            raise InvalidRequest(
                "Tool call(s) without results: " + ", ".join(sorted(pending))
            )
        if isinstance(message, ToolCallRequestMessage):
            pending = {t.call_id for t in message.tool_calls}
    if pending:
        raise InvalidRequest(
            "Tool call(s) without results: " + ", ".join(sorted(pending))
        )
