"""OpenTelemetry tracing helpers.

Each pipeline stage and each graph store commit runs inside a span so a
slow or failing extraction can be attributed to a stage.
"""

import inspect
from functools import wraps
from typing import Any, Callable

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

_tracer_provider: TracerProvider | None = None


def init_telemetry(service_name: str = "ideagraph", console_export: bool = False) -> None:
    """Initialize OpenTelemetry tracing once per process.

    Args:
        service_name: Service name attached to every span
        console_export: Print finished spans to stdout (development only)

    Example:
        >>> init_telemetry(service_name="ideagraph-api")
    """
    global _tracer_provider

    if _tracer_provider is not None:
        return

    _tracer_provider = TracerProvider(
        resource=Resource.create({"service.name": service_name})
    )
    if console_export:
        _tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_tracer_provider)


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer for creating spans.

    Args:
        name: Tracer name (typically module name)

    Example:
        >>> tracer = get_tracer(__name__)
        >>> with tracer.start_as_current_span("stage_1_classify") as span:
        ...     span.set_attribute("paper_id", "paper-42")
    """
    if _tracer_provider is None:
        init_telemetry()

    return trace.get_tracer(name)


def instrument_function(span_name: str | None = None) -> Callable:
    """Decorator wrapping a sync or async function in a span.

    Args:
        span_name: Name for the span (default: function name)
    """

    def decorator(func: Callable) -> Callable:
        actual_span_name = span_name or func.__name__
        tracer = get_tracer(func.__module__)

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with tracer.start_as_current_span(actual_span_name):
                    return await func(*args, **kwargs)

            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(actual_span_name):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator
