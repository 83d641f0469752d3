"""
OpenTelemetry setup shared by the API and the notification service.
Tracing stays off (no provider installed) when no OTLP endpoint is set.
"""

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased


def setup_tracing(
    service_name: str,
    otlp_endpoint: str,
    sample_ratio: float = 1.0,
) -> TracerProvider | None:
    if not otlp_endpoint:
        return None

    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "service.namespace": "canteen"}),
        sampler=ParentBased(TraceIdRatioBased(sample_ratio)),
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return provider


def shutdown_tracing(provider: TracerProvider | None) -> None:
    """Flush pending spans before the process exits."""
    if provider is not None:
        provider.shutdown()
