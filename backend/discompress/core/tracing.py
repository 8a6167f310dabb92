"""OpenTelemetry tracing for requests and compression jobs.

Spans cover each HTTP request (continuing an incoming ``traceparent``),
the probe step and every encode attempt. Until setup_tracing() installs a
provider, every span is a no-op.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Mapping, Optional

from opentelemetry import propagate, trace
from opentelemetry.context import Context
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "discompress"

_provider: Optional[TracerProvider] = None


def setup_tracing(
    service_name: str,
    service_version: str,
    environment: str = "production",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
) -> TracerProvider:
    """Install the process-wide tracer provider.

    Args:
        service_name: ``service.name`` resource attribute
        service_version: ``service.version`` resource attribute
        environment: ``deployment.environment`` resource attribute
        otlp_endpoint: gRPC collector address; needs the ``otlp`` extra
        console_export: Also print finished spans to stdout

    Returns:
        The installed provider
    """
    global _provider

    provider = TracerProvider(resource=Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
        "deployment.environment": environment,
    }))

    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.warning(
                "OTLP exporter not installed, spans will not leave the process",
                extra={"otlp_endpoint": otlp_endpoint},
            )
        else:
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _provider = provider
    logger.info(
        "Tracing initialized",
        extra={"service": service_name, "otlp_endpoint": otlp_endpoint, "console_export": console_export},
    )
    return provider


def extract_context(headers: Mapping[str, str]) -> Context:
    """Parent context carried by incoming W3C trace headers, if any."""
    return propagate.extract(headers)


def _current_span_context() -> trace.SpanContext:
    return trace.get_current_span().get_span_context()


def get_trace_id() -> Optional[str]:
    span_context = _current_span_context()
    return format(span_context.trace_id, "032x") if span_context.is_valid else None


def get_span_id() -> Optional[str]:
    span_context = _current_span_context()
    return format(span_context.span_id, "016x") if span_context.is_valid else None


@contextmanager
def create_span(
    name: str,
    attributes: Optional[dict] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    context: Optional[Context] = None,
) -> Iterator[trace.Span]:
    """Run the block inside a new current span.

    Exceptions escaping the block are recorded on the span, which is then
    marked as failed.
    """
    tracer = (_provider or trace.get_tracer_provider()).get_tracer(INSTRUMENTATION_NAME)
    with tracer.start_as_current_span(name, context=context, kind=kind, attributes=attributes) as span:
        yield span


def add_span_attributes(attributes: dict) -> None:
    trace.get_current_span().set_attributes(attributes)


def shutdown_tracing() -> None:
    """Flush pending spans and stop exporters."""
    global _provider
    if _provider is not None:
        _provider.shutdown()
        _provider = None
        logger.info("Tracing shutdown complete")
