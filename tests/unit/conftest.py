"""Shared fixtures for unit tests."""

import pytest
from prometheus_client import CollectorRegistry

from tests.utils.helpers import generate_key_pair
from vault_webhook.observability.metrics import WebhookMetrics
from vault_webhook.settings import Settings


@pytest.fixture
def settings():
    """Settings for a cluster named "test" with a fixed sidecar image."""
    return Settings(
        cluster="test",
        vault_addr="https://vault.example.com:8200",
        vault_ca_path="/etc/vault/ca.pem",
        sidecar_image="quay.io/uswitch/vault-creds:v1.0.0",
        gateway_addr="http://pushgateway:9091",
    )


@pytest.fixture
def metrics():
    """Metrics on a private registry."""
    return WebhookMetrics(registry=CollectorRegistry())


@pytest.fixture
def key_pair_files(tmp_path):
    """Write a fresh certificate/key pair into a temporary directory."""
    cert_pem, key_pem = generate_key_pair()
    cert_path = tmp_path / "cert.pem"
    key_path = tmp_path / "key.pem"
    cert_path.write_bytes(cert_pem)
    key_path.write_bytes(key_pem)
    return cert_path, key_path
