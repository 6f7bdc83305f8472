import os

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

log = structlog.get_logger(__name__)

tracer = trace.get_tracer("rentcontrol.webhooks")


def init_tracer(app_name: str = "rentcontrol-billing", endpoint: str | None = None):
    """Initialize OpenTelemetry tracer with OTLP exporter"""
    provider = TracerProvider(resource=Resource.create({"service.name": app_name}))

    # Allow disabling tracing via environment variable (useful in tests)
    if os.getenv("DISABLE_TRACING", "").lower() in {"1", "true", "yes"}:
        return
    try:
        exporter = OTLPSpanExporter(endpoint=endpoint)
    except Exception as exc:  # pragma: no cover - only hit when the collector is absent
        log.warning("OTLP exporter unavailable, tracing disabled", error=str(exc))
        exporter = ConsoleSpanExporter()

    provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
