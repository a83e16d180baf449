"""Optional OpenTelemetry tracing for chat requests.

Call ``glmrouter.instrument()`` once at startup.  Requires
``opentelemetry-api``; without it every helper here is a no-op.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument() -> None:
    """Start tracing chat requests with the global TracerProvider.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install glmrouter[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer("glmrouter")
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info("No TracerProvider configured; spans will be discarded")
    else:
        logger.info("glmrouter instrumentation enabled")


def uninstrument() -> None:
    global _tracer
    _tracer = None


@asynccontextmanager
async def completion_span(system: str, model: str):
    """Wrap a streamed chat request in a ``chat`` span."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
        },
    ) as span:
        yield span


def record_usage(span, input_tokens: int, output_tokens: int, response_model: str):
    if span is None:
        return
    span.set_attribute("gen_ai.usage.input_tokens", input_tokens)
    span.set_attribute("gen_ai.usage.output_tokens", output_tokens)
    span.set_attribute("gen_ai.response.model", response_model)


def record_error(span, exception: BaseException) -> None:
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute("error.type", type(exception).__name__)
