#!/usr/bin/env python3
"""
Vault Webhook - Main entry point for the credential-injecting admission webhook.

The webhook mutates every Pod created in the cluster whose service account
is granted database credentials by a DatabaseCredentialBinding. It runs:
- a cache mirroring all bindings through the Kubernetes watch API,
- an HTTPS server answering AdmissionReviews on /mutate,
- a watcher reloading the serving certificate when it is rotated,
- a plain HTTP server exposing Prometheus metrics and probes.

Usage:
    python -m vault_webhook
    # Or via the installed script:
    vault-webhook

Environment Variables:
    CLUSTER: Cluster name, used to derive the Vault login path
    VAULT_ADDR: Vault address passed to the sidecar
    SIDECAR_IMAGE: Image of the injected credentials sidecar
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
"""

import asyncio
import contextlib
import logging
import signal
import sys

from aiohttp import web

from vault_webhook.errors import ConfigurationError, WebhookError
from vault_webhook.observability.logging import setup_structured_logging
from vault_webhook.observability.metrics import MetricsServer, WebhookMetrics
from vault_webhook.observability.tracing import (
    get_tracer,
    setup_tracing,
    shutdown_tracing,
)
from vault_webhook.services.binding_cache import BindingCache
from vault_webhook.services.binding_matcher import BindingMatcher
from vault_webhook.services.patch_builder import PatchBuilder
from vault_webhook.settings import Settings
from vault_webhook.utils.certificates import KeypairReloader
from vault_webhook.utils.kubernetes import BindingListWatch, get_kubernetes_client
from vault_webhook.webhooks.mutate import create_webhook_app

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure structured logging from settings."""
    setup_structured_logging(
        log_level=settings.log_level.upper(),
        enable_json_formatting=settings.json_logs,
        correlation_id_enabled=settings.correlation_ids,
        log_health_probes=settings.log_health_probes,
    )


def validate_settings(settings: Settings) -> None:
    """
    Check settings that cannot be validated field by field.

    Raises:
        ConfigurationError: If no Vault login path can be derived
    """
    if not settings.cluster and not settings.login_path:
        raise ConfigurationError(
            "cluster name is required to derive the Vault login path",
            user_action="Set CLUSTER, or VAULT_LOGIN_PATH explicitly",
        )


async def wait_for_shutdown_signal() -> None:
    """Block until SIGINT or SIGTERM is received."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)
    try:
        await stop.wait()
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
    logger.info("Shutdown signal received")


def log_task_failure(task: asyncio.Task) -> None:
    """Done callback reporting a background task that died."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(
            f"Background task {task.get_name()} failed: {error}", exc_info=error
        )


async def run(settings: Settings) -> None:
    """
    Run the webhook until a shutdown signal arrives.

    Raises:
        ConfigurationError: If the settings are incomplete
        CacheSyncError: If the initial binding list fails
        CertificateLoadError: If the serving certificate cannot be loaded
        asyncio.TimeoutError: If the initial binding list does not finish in time
    """
    validate_settings(settings)

    metrics = WebhookMetrics()
    tracer_provider = setup_tracing(
        enabled=settings.tracing_enabled,
        endpoint=settings.tracing_endpoint,
        sample_rate=settings.tracing_sample_rate,
        insecure=settings.tracing_insecure,
        cluster=settings.cluster,
    )

    list_watch = BindingListWatch(get_kubernetes_client(), settings.binding_api_version)
    cache = BindingCache(
        list_watch,
        metrics=metrics,
        watch_timeout_seconds=settings.watch_timeout_seconds,
    )

    metrics_server = MetricsServer(
        metrics,
        port=settings.metrics_port,
        host=settings.metrics_host,
        ready_check=lambda: cache.has_synced,
    )
    await metrics_server.start()

    runner: web.AppRunner | None = None
    cert_watch: asyncio.Task | None = None
    stop_watching = asyncio.Event()
    try:
        logger.info("Waiting for binding cache to sync")
        await asyncio.wait_for(cache.start(), settings.cache_sync_timeout_seconds)

        reloader = KeypairReloader(
            settings.tls_cert_file, settings.tls_key_file, metrics=metrics
        )
        cert_watch = asyncio.create_task(
            reloader.watch(stop_watching), name="certificate-watch"
        )
        cert_watch.add_done_callback(log_task_failure)

        app = create_webhook_app(
            BindingMatcher(cache),
            PatchBuilder(settings),
            metrics=metrics,
            tracer=get_tracer(tracer_provider),
        )
        runner = web.AppRunner(app, shutdown_timeout=settings.shutdown_timeout_seconds)
        await runner.setup()
        site = web.TCPSite(
            runner,
            settings.webhook_host,
            settings.webhook_port,
            ssl_context=reloader.server_context(),
        )
        await site.start()
        logger.info(
            f"Admission webhook listening on {settings.webhook_host}:{settings.webhook_port}"
        )

        await wait_for_shutdown_signal()
    finally:
        logger.info("Shutting down vault webhook")
        # Drains in-flight admission requests before closing
        if runner is not None:
            await runner.cleanup()
        await metrics_server.stop()

        stop_watching.set()
        if cert_watch is not None:
            cert_watch.cancel()
            # Failures were already reported by log_task_failure
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await cert_watch

        await asyncio.to_thread(cache.stop)
        shutdown_tracing(tracer_provider)
        logger.info("Vault webhook stopped")


def main() -> int:
    """Console entry point."""
    settings = Settings()
    configure_logging(settings)
    logger.info("Starting vault webhook")
    try:
        asyncio.run(run(settings))
    except WebhookError as e:
        logger.critical(f"Vault webhook failed to start: {e}")
        return 1
    except TimeoutError:
        logger.critical(
            f"Binding cache did not sync within {settings.cache_sync_timeout_seconds}s"
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
