"""
Prometheus metrics for the vault webhook.

This module provides the webhook's metric collectors and the plain HTTP
server exposing them. Collectors live on a registry owned by a
``WebhookMetrics`` instance that is created once at startup and handed to
the components that record into it.
"""

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
    get,
    json_response,
)
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Admission outcome labels
RESULT_MUTATED = "mutated"
RESULT_SKIPPED = "skipped"
RESULT_ERROR = "error"


class WebhookMetrics:
    """Collects and manages metrics for the vault webhook."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize metric collectors.

        Args:
            registry: Registry to register into; a fresh one is created if omitted
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        ProcessCollector(registry=self.registry)
        PlatformCollector(registry=self.registry)

        self.binding_cache_size = Gauge(
            "database_credential_binding_cache_size",
            "Current size of the Database Credential Binding cache",
            registry=self.registry,
        )
        self.binding_events = Counter(
            "vault_webhook_binding_events_total",
            "Total number of binding watch events applied to the cache",
            ["type"],
            registry=self.registry,
        )
        self.admission_requests = Counter(
            "vault_webhook_admission_requests_total",
            "Total number of admission requests handled",
            ["result"],
            registry=self.registry,
        )
        self.admission_duration = Histogram(
            "vault_webhook_admission_duration_seconds",
            "Time spent handling admission requests",
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
            registry=self.registry,
        )
        self.injected_sidecars = Counter(
            "vault_webhook_injected_sidecars_total",
            "Total number of credential sidecars injected into pods",
            registry=self.registry,
        )
        self.certificate_reloads = Counter(
            "vault_webhook_certificate_reloads_total",
            "Total number of serving certificate reload attempts",
            ["result"],
            registry=self.registry,
        )

    def track_cache_size(self, size: Callable[[], int]) -> None:
        """Back the cache size gauge by a callable read at scrape time."""
        self.binding_cache_size.set_function(lambda: float(size()))

    @contextmanager
    def time_admission(self) -> Iterator[None]:
        """Context manager observing the duration of one admission request."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.admission_duration.observe(time.perf_counter() - start_time)

    def record_admission(self, result: str, sidecars: int = 0) -> None:
        """
        Record the outcome of an admission request.

        Args:
            result: One of mutated, skipped, error
            sidecars: Number of credential sidecars injected
        """
        self.admission_requests.labels(result=result).inc()
        if sidecars:
            self.injected_sidecars.inc(sidecars)

    def record_binding_event(self, event_type: str) -> None:
        self.binding_events.labels(type=event_type).inc()

    def record_certificate_reload(self, result: str) -> None:
        self.certificate_reloads.labels(result=result).inc()


class MetricsServer:
    """
    Plain HTTP listener for Prometheus scrapes and kubelet probes.

    It runs beside the HTTPS admission server so probes keep working while a
    certificate is being rotated.
    """

    def __init__(
        self,
        metrics: WebhookMetrics,
        port: int = 8081,
        host: str = "0.0.0.0",
        ready_check: Callable[[], bool] | None = None,
    ):
        """
        Args:
            metrics: Metrics whose registry is exposed
            port: Listening port
            host: Listening address
            ready_check: Reports readiness; the server is always ready without one
        """
        self.metrics = metrics
        self.port = port
        self.host = host
        self.ready_check = ready_check
        self.app = Application()
        self.app.add_routes(
            [
                get("/metrics", self._scrape),
                get("/ready", self._ready),
                get("/healthz", self._healthz),
            ]
        )
        self.runner: AppRunner | None = None

    async def _scrape(self, request: Request) -> Response:
        try:
            body = generate_latest(self.metrics.registry)
        except Exception as e:
            logger.error(f"Could not render metrics: {e}", exc_info=True)
            return Response(
                text=f"Error generating metrics: {type(e).__name__}. Check logs for details.",
                status=500,
            )
        return Response(body=body, content_type=CONTENT_TYPE_LATEST)

    async def _ready(self, request: Request) -> Response:
        """Ready once the binding cache has completed its initial list."""
        ready = self.ready_check is None or self.ready_check()
        return json_response(
            {"status": "ready" if ready else "not_ready", "timestamp": time.time()},
            status=200 if ready else 503,
        )

    async def _healthz(self, request: Request) -> Response:
        return Response(text="ok")

    async def start(self) -> None:
        """
        Bind the listener.

        Raises:
            OSError: If the address cannot be bound
        """
        self.runner = AppRunner(self.app, access_log=None)
        await self.runner.setup()
        try:
            await TCPSite(self.runner, self.host, self.port).start()
        except OSError:
            await self.runner.cleanup()
            self.runner = None
            raise
        logger.info(f"Metrics server listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Close the listener; safe to call when not started."""
        if self.runner is None:
            return
        runner, self.runner = self.runner, None
        await runner.cleanup()
        logger.info("Metrics server stopped")
