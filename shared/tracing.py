"""OpenTelemetry tracing setup."""

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from shared.logging import get_logger

_configured = False


def configure_tracing(service_name: str, otel_exporter: str) -> None:
    """Install a global tracer provider exporting spans over OTLP/HTTP."""
    global _configured
    if _configured:
        return

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    endpoint = f"{otel_exporter.rstrip('/')}/v1/traces"
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    _configured = True

    get_logger("tracing").info("Tracing configured", service=service_name, endpoint=endpoint)


def get_tracer(name: str) -> trace.Tracer:
    """Tracer for a component; a no-op tracer until tracing is configured."""
    return trace.get_tracer(name)
