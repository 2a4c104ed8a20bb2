"""
Tracer setup plus trace-context propagation through Kafka message headers,
so a change event's consume span joins the HTTP request that produced it.
"""

from opentelemetry import context, trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.propagate import extract, inject
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

KafkaHeaders = list[tuple[str, bytes]]


def setup_tracing(service_name: str, otlp_endpoint: str) -> None:
    """Install the global tracer provider. An empty endpoint keeps spans local."""
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    trace.set_tracer_provider(provider)


def outgoing_headers() -> KafkaHeaders:
    carrier: dict[str, str] = {}
    inject(carrier)
    return [(key, value.encode()) for key, value in carrier.items()]


def incoming_context(headers: KafkaHeaders | None) -> context.Context:
    carrier = {key: value.decode() for key, value in headers or ()}
    return extract(carrier)
