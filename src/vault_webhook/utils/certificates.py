"""
Serving certificate loading and hot reload.

The webhook's certificate is rotated by writing a new pair into the
certificate directory. ``KeypairReloader`` keeps the active pair as one
immutable ``KeyPair`` and swaps the reference under a lock, so a TLS
handshake sees either the old pair or the new one, never a mix. A pair that
fails to load leaves the previous one in service.
"""

import asyncio
import logging
import ssl
import tempfile
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from watchfiles import Change, awatch

from vault_webhook.constants import RELOAD_FAILURE, RELOAD_SUCCESS
from vault_webhook.errors import CertificateLoadError
from vault_webhook.observability.metrics import WebhookMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyPair:
    """A certificate, its key, and the TLS context serving them."""

    cert_pem: bytes
    key_pem: bytes
    context: ssl.SSLContext = field(repr=False, compare=False)


def build_server_context(cert_pem: bytes, key_pem: bytes) -> ssl.SSLContext:
    """
    Build a TLS server context from PEM data.

    The PEM data is staged in a private temporary directory because
    ``SSLContext.load_cert_chain`` only reads from files; loading from the
    bytes already read guarantees the context matches the recorded pair.

    Raises:
        ssl.SSLError: If the data is not a valid, matching pair
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    with tempfile.TemporaryDirectory(prefix="vault-webhook-tls-") as staging:
        cert_file = Path(staging) / "tls.crt"
        key_file = Path(staging) / "tls.key"
        cert_file.write_bytes(cert_pem)
        key_file.write_bytes(key_pem)
        context.load_cert_chain(cert_file, key_file)
    return context


def load_key_pair(cert_path: str, key_path: str) -> KeyPair:
    """
    Load a certificate/key pair from disk.

    Raises:
        CertificateLoadError: If either file is unreadable or the pair is invalid
    """
    try:
        cert_pem = Path(cert_path).read_bytes()
        key_pem = Path(key_path).read_bytes()
        context = build_server_context(cert_pem, key_pem)
    except (OSError, ssl.SSLError) as e:
        raise CertificateLoadError(cert_path, key_path, cause=e) from e
    return KeyPair(cert_pem=cert_pem, key_pem=key_pem, context=context)


class KeypairReloader:
    """Holds the active serving certificate and reloads it on change."""

    def __init__(
        self,
        cert_path: str,
        key_path: str,
        watch_dir: str | None = None,
        metrics: WebhookMetrics | None = None,
        loader: Callable[[str, str], KeyPair] = load_key_pair,
    ):
        """
        Load the initial pair.

        Args:
            cert_path: Certificate file
            key_path: Private key file
            watch_dir: Directory watched for new files (defaults to the certificate's)
            metrics: Metrics to record reload outcomes into
            loader: Function loading a pair from the two paths

        Raises:
            CertificateLoadError: If the initial pair cannot be loaded
        """
        self.cert_path = cert_path
        self.key_path = key_path
        self.watch_dir = watch_dir or str(Path(cert_path).parent)
        self._metrics = metrics
        self._loader = loader
        self._lock = threading.Lock()
        self._pair = loader(cert_path, key_path)
        logger.info(f"Loaded serving certificate from {cert_path}")

    def current(self) -> KeyPair:
        """Return the active pair."""
        with self._lock:
            return self._pair

    def reload(self) -> KeyPair:
        """
        Load the pair from disk and make it active.

        Returns:
            The newly active pair

        Raises:
            CertificateLoadError: If the pair cannot be loaded; the previous
                pair stays active
        """
        pair = self._loader(self.cert_path, self.key_path)
        with self._lock:
            self._pair = pair
        return pair

    def server_context(self) -> ssl.SSLContext:
        """
        TLS context for the HTTPS listener.

        Each handshake is switched to the context of the pair active at that
        moment, so new connections pick up a reloaded certificate while
        established ones keep theirs.
        """
        pair = self.current()
        context = build_server_context(pair.cert_pem, pair.key_pem)
        context.sni_callback = self._select_context
        return context

    def _select_context(
        self,
        ssl_object: ssl.SSLObject | ssl.SSLSocket,
        server_name: str | None,
        context: ssl.SSLContext,
    ) -> None:
        ssl_object.context = self.current().context

    def try_reload(self) -> bool:
        """Reload, logging a failure instead of raising it."""
        logger.info("Reloading certs")
        try:
            self.reload()
        except CertificateLoadError as e:
            logger.error(f"Could not load new certs: {e}")
            if self._metrics is not None:
                self._metrics.record_certificate_reload(RELOAD_FAILURE)
            return False
        if self._metrics is not None:
            self._metrics.record_certificate_reload(RELOAD_SUCCESS)
        return True

    async def watch(self, stop_event: asyncio.Event | None = None) -> None:
        """
        Reload whenever a file is created in the certificate directory.

        Runs until ``stop_event`` is set.
        """
        logger.info(f"Watching {self.watch_dir} for new certificates")
        async for changes in awatch(
            self.watch_dir, stop_event=stop_event, recursive=False
        ):
            if any(change == Change.added for change, _ in changes):
                await asyncio.to_thread(self.try_reload)
