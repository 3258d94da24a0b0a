"""
Helpers for unit tests.

This module provides a fake list/watch source for the binding cache and a
self-signed certificate generator for the TLS tests.
"""

import threading
from datetime import UTC, datetime, timedelta
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID


def generate_key_pair(common_name: str = "vault-webhook.test") -> tuple[bytes, bytes]:
    """Create a self-signed certificate and its key as PEM bytes."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False
        )
        .sign(key, hashes.SHA256())
    )
    cert_pem = certificate.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


class FakeListWatch:
    """In-memory list/watch source standing in for the Kubernetes API."""

    def __init__(
        self,
        items: list[dict[str, Any]] | None = None,
        resource_version: str = "1",
        events: list[dict[str, Any]] | None = None,
        list_error: Exception | None = None,
    ):
        self.items = list(items or [])
        self.resource_version = resource_version
        self.events = list(events or [])
        self.list_error = list_error
        self.list_calls = 0
        self.watch_calls: list[str | None] = []
        self.stopped = threading.Event()

    def list(self):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.items), self.resource_version

    def watch(self, resource_version, timeout_seconds):
        self.watch_calls.append(resource_version)
        while self.events:
            yield self.events.pop(0)
        self.stopped.wait(0.05)

    def stop(self):
        self.stopped.set()
