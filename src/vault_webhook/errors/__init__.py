"""
Error handling module for the vault webhook.

This module provides the error hierarchy shared by the binding cache, the
patch builder, the certificate reloader and the admission handler.
"""

from .webhook_errors import (
    CacheSyncError,
    CertificateLoadError,
    ConfigurationError,
    DecodeError,
    EnumerationError,
    PatchEncodingError,
    WebhookError,
)

__all__ = [
    "WebhookError",
    "DecodeError",
    "EnumerationError",
    "PatchEncodingError",
    "CertificateLoadError",
    "CacheSyncError",
    "ConfigurationError",
]
