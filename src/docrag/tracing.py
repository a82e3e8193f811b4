"""
OpenTelemetry spans around retrieval operations.

Spans are only emitted when ``enable_tracing`` is set. Without an SDK
configured the OpenTelemetry API hands out no-op tracers, so this module
costs nothing by default.

Usage:
    from docrag.tracing import traced

    @traced("retrieval.query")
    def query(...):
        ...
"""

import functools
from typing import Any, Callable, TypeVar

from opentelemetry import trace

from docrag.config import settings

F = TypeVar("F", bound=Callable[..., Any])

TRACER_NAME = "docrag"


def traced(name: str | None = None) -> Callable[[F], F]:
    """
    Decorator to add a tracing span to a function.

    Args:
        name: Span name (defaults to function name)
    """

    def decorator(func: F) -> F:
        span_name = name or func.__name__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not settings.enable_tracing:
                return func(*args, **kwargs)

            tracer = trace.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(span_name) as span:
                span.set_attribute("function.name", func.__name__)
                span.set_attribute("function.module", func.__module__)
                result = func(*args, **kwargs)
                span.set_attribute("result.type", type(result).__name__)
                return result

        return wrapper  # type: ignore

    return decorator


def add_span_attributes(**attributes: Any) -> None:
    """
    Add attributes to the current span.

    Example:
        add_span_attributes(scope_id="chat-1", degraded=True)
    """
    if not settings.enable_tracing:
        return

    span = trace.get_current_span()
    for key, value in attributes.items():
        if isinstance(value, (str, int, float, bool)):
            span.set_attribute(key, value)
        else:
            span.set_attribute(key, str(value))
