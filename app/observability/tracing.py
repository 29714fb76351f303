"""
Distributed Tracing with OpenTelemetry.

Provides request tracing exported over OTLP. Off unless TRACING_ENABLED is set.
"""

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

from app.config import Settings


def setup_tracing(settings: Settings) -> None:
    """
    Configure OpenTelemetry tracing with OTLP export.

    Sets up:
    - TracerProvider with service resource
    - OTLP exporter to collector
    """
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
        }
    )

    provider = TracerProvider(resource=resource)
    otlp_exporter = OTLPSpanExporter(
        endpoint=settings.otlp_endpoint,
        insecure=settings.otlp_insecure,
    )
    provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any, settings: Settings) -> None:
    """
    Instrument FastAPI application for automatic tracing.

    Must be called after app creation.
    """
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app)



def get_tracer(name: str) -> Tracer:
    """
    Get a tracer instance for manual span creation.

    Without setup_tracing() this is the no-op tracer.
    """
    return trace.get_tracer(name)


@contextmanager
def purchase_span(
    name: str, purchase_key: str | None = None, **attributes: str | float | None
) -> Iterator[Span]:
    """
    Span for one purchase operation.

    Attributes are recorded under the "purchase." namespace; None values are
    skipped. Exceptions raised inside the block are recorded on the span.

    Usage:
        with purchase_span("record_purchase", purchase_key=key, payment_id=payment_id):
            ...
    """
    with get_tracer("app.purchases").start_as_current_span(name) as span:
        if purchase_key is not None:
            span.set_attribute("purchase.key", purchase_key)
        for attr, value in attributes.items():
            if value is not None:
                span.set_attribute(f"purchase.{attr}", value)
        yield span
