"""OpenTelemetry tracing configuration."""

from __future__ import annotations

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
)

from lifecycle.config import ObservabilitySettings


def setup_tracing(settings: ObservabilitySettings) -> bool:
    """Configure OpenTelemetry tracing. Returns False when disabled."""
    if not settings.tracing_enabled:
        return False

    resource = Resource.create({
        "service.name": settings.service_name,
        "service.version": "1.0.0",
    })

    provider = TracerProvider(resource=resource)

    # Console exporter for development
    provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    # OTLP exporter when the optional grpc exporter package is installed
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        OTLPSpanExporter = None  # noqa: N806
    if OTLPSpanExporter is not None:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )

    trace.set_tracer_provider(provider)
    return True


def get_tracer(name: str = "lifecycle") -> trace.Tracer:
    """Get a tracer instance."""
    return trace.get_tracer(name)
