"""
OpenTelemetry distributed tracing for the vault webhook.

This module provides:
- Tracer provider construction with an OTLP exporter
- W3C trace context extraction from incoming admission requests
- A span helper for admission handling

The provider is created once at startup and the resulting tracer is handed
to the admission handler. With tracing disabled the handler receives the
no-op tracer from the OpenTelemetry API.

Usage:
    provider = setup_tracing(enabled=True, endpoint="http://collector:4317")
    tracer = get_tracer(provider)
    with admission_span(tracer, "mutate_pod", headers, attributes):
        ...
"""

import contextlib
import logging
from collections.abc import Iterator, Mapping

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

TRACER_NAME = "vault_webhook"


def setup_tracing(
    enabled: bool = False,
    endpoint: str = "http://localhost:4317",
    service_name: str = "vault-webhook",
    sample_rate: float = 1.0,
    insecure: bool = True,
    cluster: str = "",
    use_simple_processor: bool = False,
) -> TracerProvider | None:
    """
    Build the tracer provider exporting admission spans over OTLP/gRPC.

    The provider is not installed globally; callers obtain their tracer
    through ``get_tracer(provider)``.

    Args:
        enabled: Return None without touching OpenTelemetry when False
        endpoint: Collector address
        service_name: ``service.name`` resource attribute
        sample_rate: Fraction of root spans kept
        insecure: Connect to the collector without TLS
        cluster: ``k8s.cluster.name`` resource attribute
        use_simple_processor: Export each span synchronously (tests)

    Returns:
        The provider, or None when tracing is disabled
    """
    if not enabled:
        logger.info("Tracing disabled")
        return None

    logger.info(f"Exporting traces to {endpoint} (sample rate {sample_rate})")

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "vault-webhook",
            "deployment.environment": "kubernetes",
            "k8s.cluster.name": cluster,
        }
    )

    # ParentBased keeps the API server's sampling decision for continued traces
    sampler = ParentBased(root=TraceIdRatioBased(sample_rate))
    provider = TracerProvider(resource=resource, sampler=sampler)

    exporter = OTLPSpanExporter(endpoint=endpoint, insecure=insecure)
    if use_simple_processor:
        processor = SimpleSpanProcessor(exporter)
    else:
        processor = BatchSpanProcessor(exporter)
    provider.add_span_processor(processor)

    return provider


def shutdown_tracing(provider: TracerProvider | None) -> None:
    """Flush pending spans and stop the exporter."""
    if provider is not None:
        logger.info("Flushing traces")
        provider.shutdown()


def get_tracer(provider: TracerProvider | None = None) -> Tracer:
    """
    Get a tracer for admission spans.

    Args:
        provider: Provider from setup_tracing, or None when tracing is disabled

    Returns:
        Tracer instance (no-op if tracing is disabled)
    """
    if provider is None:
        return trace.NoOpTracer()
    return provider.get_tracer(TRACER_NAME)


def extract_trace_context(headers: Mapping[str, str]) -> Context:
    """
    Extract trace context from incoming headers.

    Args:
        headers: Headers containing trace context

    Returns:
        Extracted context (empty if the caller sent none)
    """
    carrier = {key.lower(): value for key, value in headers.items()}
    return TraceContextTextMapPropagator().extract(carrier)


@contextlib.contextmanager
def admission_span(
    tracer: Tracer,
    operation_name: str,
    headers: Mapping[str, str],
    attributes: dict[str, str] | None = None,
) -> Iterator[Span]:
    """
    Span covering the handling of one admission request.

    Records exceptions as span events and sets the span status based on
    success or failure.
    """
    with tracer.start_as_current_span(
        operation_name,
        context=extract_trace_context(headers),
        kind=SpanKind.SERVER,
        attributes=attributes or {},
    ) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
