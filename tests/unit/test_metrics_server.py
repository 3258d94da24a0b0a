"""
Unit tests for the metrics collectors and MetricsServer HTTP endpoints.

Uses ``aiohttp.test_utils`` to drive the server's aiohttp application
without binding the configured port.
"""

from unittest.mock import patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from vault_webhook.observability.metrics import (
    RESULT_MUTATED,
    RESULT_SKIPPED,
    MetricsServer,
)


@pytest.fixture
def ready():
    return {"value": False}


@pytest.fixture
def metrics_server(metrics, ready):
    """Create a fresh MetricsServer instance per test."""
    return MetricsServer(metrics, port=0, ready_check=lambda: ready["value"])


@pytest.fixture
async def client(metrics_server):
    """Create an aiohttp TestClient from the MetricsServer app."""
    async with TestClient(TestServer(metrics_server.app)) as cli:
        yield cli


# ---------------------------------------------------------------------------
# Collectors
# ---------------------------------------------------------------------------
class TestWebhookMetrics:
    """Tests for recording into the collectors."""

    def test_registries_are_independent(self, metrics):
        from prometheus_client import CollectorRegistry

        from vault_webhook.observability.metrics import WebhookMetrics

        other = WebhookMetrics(registry=CollectorRegistry())
        metrics.record_admission(RESULT_SKIPPED)

        assert other.registry.get_sample_value(
            "vault_webhook_admission_requests_total", {"result": RESULT_SKIPPED}
        ) is None

    def test_record_admission_counts_sidecars(self, metrics):
        metrics.record_admission(RESULT_MUTATED, sidecars=2)
        metrics.record_admission(RESULT_SKIPPED)

        sample = metrics.registry.get_sample_value
        assert sample("vault_webhook_admission_requests_total", {"result": "mutated"}) == 1
        assert sample("vault_webhook_admission_requests_total", {"result": "skipped"}) == 1
        assert sample("vault_webhook_injected_sidecars_total") == 2

    def test_cache_size_is_read_at_scrape_time(self, metrics):
        size = {"value": 3}
        metrics.track_cache_size(lambda: size["value"])

        assert (
            metrics.registry.get_sample_value("database_credential_binding_cache_size")
            == 3
        )
        size["value"] = 0
        assert (
            metrics.registry.get_sample_value("database_credential_binding_cache_size")
            == 0
        )

    def test_time_admission_observes_on_error(self, metrics):
        with pytest.raises(RuntimeError), metrics.time_admission():
            raise RuntimeError("boom")

        assert (
            metrics.registry.get_sample_value(
                "vault_webhook_admission_duration_seconds_count"
            )
            == 1
        )


# ---------------------------------------------------------------------------
# /metrics endpoint
# ---------------------------------------------------------------------------
class TestMetricsEndpoint:
    """Tests for ``GET /metrics``."""

    @pytest.mark.asyncio
    async def test_metrics_returns_200(self, client, metrics):
        """Prometheus scrape endpoint returns the webhook's collectors."""
        metrics.record_binding_event("ADDED")

        resp = await client.get("/metrics")

        assert resp.status == 200
        body = await resp.text()
        assert "database_credential_binding_cache_size" in body
        assert 'vault_webhook_binding_events_total{type="ADDED"} 1.0' in body

    @pytest.mark.asyncio
    async def test_metrics_error_returns_500(self, client):
        """When generate_latest raises, the handler returns 500."""
        with patch(
            "vault_webhook.observability.metrics.generate_latest",
            side_effect=RuntimeError("boom"),
        ):
            resp = await client.get("/metrics")
        assert resp.status == 500
        body = await resp.text()
        assert "RuntimeError" in body


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------
class TestProbes:
    """Tests for ``GET /healthz`` and ``GET /ready``."""

    @pytest.mark.asyncio
    async def test_healthz_returns_200_ok(self, client):
        """/healthz should always return 200 'ok'."""
        resp = await client.get("/healthz")
        assert resp.status == 200
        assert await resp.text() == "ok"

    @pytest.mark.asyncio
    async def test_not_ready_until_cache_synced(self, client, ready):
        resp = await client.get("/ready")
        assert resp.status == 503
        assert (await resp.json())["status"] == "not_ready"

        ready["value"] = True
        resp = await client.get("/ready")
        assert resp.status == 200
        assert (await resp.json())["status"] == "ready"

    @pytest.mark.asyncio
    async def test_ready_without_check(self, metrics):
        server = MetricsServer(metrics, port=0)
        async with TestClient(TestServer(server.app)) as cli:
            resp = await cli.get("/ready")
        assert resp.status == 200
