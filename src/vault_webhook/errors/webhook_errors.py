"""
Webhook error hierarchy with categorization.

This module defines the error types used throughout the vault webhook.
Per-request errors are turned into admission responses by the protocol
handler; startup errors are fatal; reload errors are logged and absorbed.
"""


class WebhookError(Exception):
    """
    Base error class for all webhook-related exceptions.

    Provides categorization and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize webhook error.

        Args:
            message: Human-readable error description
            category: Error category (decode, cache, encoding, certificate, ...)
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class DecodeError(WebhookError):
    """The admission review or its embedded object could not be decoded."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="decode",
            cause=cause,
        )


class EnumerationError(WebhookError):
    """The binding store holds an entry that is not a binding."""

    def __init__(self, entry: object):
        super().__init__(
            message=f"unexpected object in binding store: {entry!r}",
            category="cache",
            user_action="Restart the webhook to rebuild the binding cache",
        )
        self.entry = entry


class PatchEncodingError(WebhookError):
    """The assembled JSON Patch could not be serialized."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=f"could not encode patch: {message}",
            category="encoding",
            cause=cause,
        )


class CertificateLoadError(WebhookError):
    """A serving certificate/key pair could not be loaded."""

    def __init__(self, cert_path: str, key_path: str, cause: Exception | None = None):
        detail = f": {cause}" if cause else ""
        super().__init__(
            message=f"failed to load key pair {cert_path}, {key_path}{detail}",
            category="certificate",
            user_action="Check that the certificate and key files are valid PEM and match",
            cause=cause,
        )
        self.cert_path = cert_path
        self.key_path = key_path


class CacheSyncError(WebhookError):
    """The binding cache could not complete its initial list."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="cache",
            user_action="Check RBAC permissions for databasecredentialbindings and API server connectivity",
            cause=cause,
        )


class ConfigurationError(WebhookError):
    """Error in webhook configuration."""

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(
            message=message,
            category="configuration",
            user_action=user_action or "Check webhook environment variables",
        )
