"""
Observability package for the vault webhook.

This package provides:
- Prometheus metrics collection and exposure
- Structured logging with correlation IDs
- OpenTelemetry tracing of admission requests
"""

from .logging import get_correlation_id, set_correlation_id, setup_structured_logging
from .metrics import MetricsServer, WebhookMetrics
from .tracing import get_tracer, setup_tracing, shutdown_tracing

__all__ = [
    "MetricsServer",
    "WebhookMetrics",
    "get_correlation_id",
    "set_correlation_id",
    "setup_structured_logging",
    "get_tracer",
    "setup_tracing",
    "shutdown_tracing",
]
