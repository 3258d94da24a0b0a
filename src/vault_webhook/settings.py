"""Centralized webhook settings using pydantic-settings.

This module provides a single source of truth for all webhook configuration
loaded from environment variables. Settings are constructed once at process
start and passed down to the components that need them.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Webhook configuration loaded from environment variables.

    Every value is fixed for the lifetime of the process; the model is
    frozen so a component cannot alter what another one observes.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # Cluster identification
    cluster: str = Field(
        default="",
        validation_alias="CLUSTER",
        description="Name of the cluster, used to derive the Vault login path",
    )

    # Vault sidecar configuration
    vault_addr: str = Field(
        default="https://vault:8200",
        validation_alias="VAULT_ADDR",
        description="Address of the Vault server the sidecar talks to",
    )
    vault_ca_path: str = Field(
        default="/etc/vault/ca.pem",
        validation_alias="VAULT_CA_PATH",
        description="Path of the Vault CA bundle inside the sidecar",
    )
    login_path: str = Field(
        default="",
        validation_alias="VAULT_LOGIN_PATH",
        description="Vault Kubernetes auth login path (empty = kubernetes/<cluster>/login)",
    )
    sidecar_image: str = Field(
        default="quay.io/uswitch/vault-creds:latest",
        validation_alias="SIDECAR_IMAGE",
        description="Image reference of the injected credentials sidecar",
    )
    gateway_addr: str = Field(
        default="",
        validation_alias="GATEWAY_ADDR",
        description="Address of the Prometheus push gateway used by the sidecar",
    )
    secret_path_format: str = Field(
        default="%s/creds/%s",
        validation_alias="SECRET_PATH_FORMAT",
        description="Vault secret path template, formatted with database then role",
    )

    # Custom resource coordinates
    binding_api_version: str = Field(
        default="v1",
        validation_alias="BINDING_API_VERSION",
        description="API version of the DatabaseCredentialBinding resource",
    )

    # Webhook server
    webhook_host: str = Field(
        default="0.0.0.0",
        validation_alias="WEBHOOK_HOST",
        description="Host address to bind the admission webhook server",
    )
    webhook_port: int = Field(
        default=443,
        validation_alias="WEBHOOK_PORT",
        description="Port for the admission webhook HTTPS server",
    )
    tls_cert_file: str = Field(
        default="/etc/webhook/certs/cert.pem",
        validation_alias="TLS_CERT_FILE",
        description="Serving certificate path",
    )
    tls_key_file: str = Field(
        default="/etc/webhook/certs/key.pem",
        validation_alias="TLS_KEY_FILE",
        description="Serving private key path",
    )
    shutdown_timeout_seconds: float = Field(
        default=10.0,
        validation_alias="SHUTDOWN_TIMEOUT_SECONDS",
        description="Grace period for in-flight admission requests on shutdown",
    )

    # Binding cache
    cache_sync_timeout_seconds: float = Field(
        default=60.0,
        validation_alias="CACHE_SYNC_TIMEOUT_SECONDS",
        description="Maximum time to wait for the initial binding list at startup",
    )
    watch_timeout_seconds: int = Field(
        default=300,
        validation_alias="WATCH_TIMEOUT_SECONDS",
        description="Server-side timeout of a single binding watch request",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Log health probe and metrics scrape requests",
    )

    # Metrics and observability
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port for Prometheus metrics endpoint",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Host address to bind metrics server",
    )

    # Tracing
    tracing_enabled: bool = Field(
        default=False,
        validation_alias="TRACING_ENABLED",
        description="Enable OpenTelemetry tracing",
    )
    tracing_endpoint: str = Field(
        default="http://localhost:4317",
        validation_alias="TRACING_ENDPOINT",
        description="OTLP collector endpoint (gRPC)",
    )
    tracing_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        validation_alias="TRACING_SAMPLE_RATE",
        description="Fraction of root spans to sample",
    )
    tracing_insecure: bool = Field(
        default=True,
        validation_alias="TRACING_INSECURE",
        description="Use an insecure connection to the collector",
    )

    @field_validator("secret_path_format")
    @classmethod
    def validate_secret_path_format(cls, v: str) -> str:
        try:
            v % ("database", "role")
        except (TypeError, ValueError, KeyError) as e:
            raise ValueError(
                "secret_path_format must contain exactly two %s placeholders "
                f"(database, then role): {e}"
            ) from e
        return v

    @property
    def resolved_login_path(self) -> str:
        """Vault login path, derived from the cluster name when not set.

        Returns:
            Login path passed to the sidecar via --login-path
        """
        if self.login_path:
            return self.login_path
        return f"kubernetes/{self.cluster}/login"
