"""Streaming chat-completion client for ChatGLM and OpenAI-compatible endpoints."""

from glmrouter.config import PROVIDERS, ModelInfo, ProviderConfig
from glmrouter.decoder import StreamDecoder
from glmrouter.errors import (
    GLMRouterError,
    InvalidRequest,
    InvalidToolCallPayload,
    InvalidToolDefinition,
    MissingApiKey,
    NoResponseBody,
    TokenBudgetExceeded,
    UpstreamHttpError,
)
from glmrouter.events import (
    ReasoningEvent,
    StreamCompleteEvent,
    StreamEvent,
    TextEvent,
    ToolCallEvent,
)
from glmrouter.instrumentation import instrument, uninstrument
from glmrouter.logconfig import configure_logging
from glmrouter.message import (
    Message,
    MessageRole,
    ToolCallRequestMessage,
    ToolCallResultMessage,
)
from glmrouter.provider import ChatProvider
from glmrouter.tools import ToolDefinition, ToolMode
from glmrouter.usage import UsageTracker

__version__ = "0.1.0"

__all__ = [
    "PROVIDERS",
    "ChatProvider",
    "GLMRouterError",
    "InvalidRequest",
    "InvalidToolCallPayload",
    "InvalidToolDefinition",
    "Message",
    "MessageRole",
    "MissingApiKey",
    "ModelInfo",
    "NoResponseBody",
    "ProviderConfig",
    "ReasoningEvent",
    "StreamCompleteEvent",
    "StreamDecoder",
    "StreamEvent",
    "TextEvent",
    "TokenBudgetExceeded",
    "ToolCallEvent",
    "ToolCallRequestMessage",
    "ToolCallResultMessage",
    "ToolDefinition",
    "ToolMode",
    "UpstreamHttpError",
    "UsageTracker",
    "configure_logging",
    "instrument",
    "uninstrument",
]
