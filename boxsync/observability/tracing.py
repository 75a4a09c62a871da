"""
OpenTelemetry tracing for enqueue, lease acquisition, job execution and
verification.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Tracer

from boxsync import __version__
from boxsync.config import get_settings

logger = logging.getLogger(__name__)

_tracer: Tracer | None = None


def setup_tracing(component: str = "api") -> Tracer:
    """
    Install the tracer provider for one boxsync process.

    With ``otel_enabled`` off the provider has no exporter: spans are still
    created (and show up as trace ids in logs) but never shipped.

    Args:
        component: Process name recorded on the resource.
    """
    global _tracer

    settings = get_settings()
    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.otel_service_name,
                "service.version": __version__,
                "boxsync.component": component,
            }
        )
    )

    if settings.otel_enabled:
        try:
            exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=True)
            provider.add_span_processor(BatchSpanProcessor(exporter))
        except Exception:
            logger.warning("OTLP exporter unavailable, spans will not be exported")

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer("boxsync", __version__)
    return _tracer


def instrument_fastapi(app: Any) -> None:
    FastAPIInstrumentor.instrument_app(app)


def get_tracer() -> Tracer:
    """Tracer for boxsync spans, setting tracing up on first use."""
    global _tracer
    if _tracer is None:
        _tracer = setup_tracing()
    return _tracer


@contextmanager
def job_span(name: str, queue: str, key: str, **attributes: Any) -> Iterator[Span]:
    """
    Span around one operation on the job ``queue``/``key``.

    Extra keyword attributes are recorded under the ``boxsync.`` prefix.
    """
    with get_tracer().start_as_current_span(name) as span:
        span.set_attribute("boxsync.queue", queue)
        span.set_attribute("boxsync.job_key", key)
        for attr, value in attributes.items():
            span.set_attribute(f"boxsync.{attr}", value)
        yield span
