"""Exceptions raised by glmrouter.

Only contract violations and transport failures are raised. Transient
noise in the stream (bad JSON lines, malformed inline calls, calls left
dangling by a clean end of stream) is dropped by the decoder instead.
"""


class GLMRouterError(Exception):
    """Base class for every error raised by this package."""


class InvalidToolCallPayload(GLMRouterError):
    """A structured tool call was still unparseable at the tool-calls marker."""

    def __init__(self, index: int, arguments: str):
        self.index = index
        self.snippet = arguments[:200]
        super().__init__(
            f"Invalid JSON for tool call at index {index}: {self.snippet!r}"
        )


class UpstreamHttpError(GLMRouterError):
    """The endpoint answered with a non-success status."""

    def __init__(self, status_code: int, body: str = "", provider: str = ""):
        self.status_code = status_code
        self.body = body
        self.provider = provider
        prefix = f"{provider} API error" if provider else "API error"
        message = f"{prefix}: {status_code}"
        if body:
            message += f"\n{body}"
        super().__init__(message)


class TokenBudgetExceeded(GLMRouterError):
    """The estimated request size exceeds the model's input limit."""

    def __init__(self, estimated: int, limit: int):
        self.estimated = estimated
        self.limit = limit
        super().__init__(
            f"Message exceeds token limit: {estimated} > {limit}"
        )


class NoResponseBody(GLMRouterError):
    """The transport returned no stream to read from."""

    def __init__(self):
        super().__init__("No response body from API")


class MissingApiKey(GLMRouterError):
    """No API key could be resolved for a provider."""

    def __init__(self, provider: str, env_var: str):
        self.provider = provider
        self.env_var = env_var
        super().__init__(
            f"{provider} API key not found. Pass api_key= or set {env_var}."
        )


class InvalidRequest(GLMRouterError):
    """The conversation handed to the provider is malformed."""


class InvalidToolDefinition(GLMRouterError):
    """A tool definition cannot be sent to the endpoint."""
