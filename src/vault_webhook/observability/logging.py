"""
Structured logging for the vault webhook.

Every log line written while an admission request is handled carries the
request UID as its correlation ID, so webhook logs can be joined with the
API server's audit log. Output is JSON by default; probe and scrape
requests are dropped from the access log unless asked for.
"""

import json
import logging
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Admission request UID of the task currently logging
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Endpoints polled by kubelet and Prometheus
HEALTH_PROBE_PATHS = frozenset({"/healthz", "/ready", "/metrics"})

# Record attributes copied into JSON output when present
STRUCTURED_FIELDS = (
    "namespace",
    "pod_name",
    "owner_kind",
    "owner_name",
    "uid",
    "operation",
    "user",
    "binding",
    "event_type",
    "cache_size",
    "duration",
    "error_type",
    "patch",
)

# Libraries whose INFO output is noise at the webhook's request rate
QUIET_LOGGERS = (
    "kubernetes",
    "urllib3",
    "watchfiles",
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web",
)

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PLAIN_FORMAT_WITH_ID = (
    "%(asctime)s - %(correlation_id)s - %(name)s - %(levelname)s - %(message)s"
)


class HealthProbeFilter(logging.Filter):
    """Drops log lines mentioning a probe or scrape endpoint."""

    def __init__(self, suppress_health_logs: bool = True):
        super().__init__()
        self.suppress_health_logs = suppress_health_logs

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.suppress_health_logs:
            return True
        message = record.getMessage()
        return not any(path in message for path in HEALTH_PROBE_PATHS)


class CorrelationIDFilter(logging.Filter):
    """Stamps each record with the current correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get()
        return True


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fields passed through ``extra=`` are included when they are listed in
    ``STRUCTURED_FIELDS``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }
        payload.update(
            (name, getattr(record, name))
            for name in STRUCTURED_FIELDS
            if hasattr(record, name)
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def set_correlation_id(corr_id: str) -> str:
    """
    Set the correlation ID for the current task.

    Args:
        corr_id: The admission request UID

    Returns:
        The correlation ID that was set
    """
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    """Correlation ID of the current task, or empty string outside a request."""
    return correlation_id.get()


def _build_formatter(json_output: bool, with_correlation_id: bool) -> logging.Formatter:
    if json_output:
        return StructuredFormatter()
    if with_correlation_id:
        return logging.Formatter(PLAIN_FORMAT_WITH_ID)
    return logging.Formatter(PLAIN_FORMAT)


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
    log_health_probes: bool = False,
) -> None:
    """
    Route all logging to one stderr handler on the root logger.

    Args:
        log_level: Root level name; unknown names fall back to INFO
        enable_json_formatting: Emit JSON instead of plain text
        correlation_id_enabled: Stamp records with the request UID
        log_health_probes: Keep probe and scrape lines in the output
    """
    handler = logging.StreamHandler()
    handler.setFormatter(
        _build_formatter(enable_json_formatting, correlation_id_enabled)
    )
    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())
    if not log_health_probes:
        handler.addFilter(HealthProbeFilter())

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class AdmissionLogger:
    """Log helpers for the stages of an admission request."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def log_review(
        self,
        uid: str,
        namespace: str,
        pod_name: str,
        owner_kind: str,
        owner_name: str,
        operation: str,
        user: str,
    ) -> None:
        """Log receipt of an admission review for a pod."""
        self.logger.info(
            f"AdmissionReview for Kind={owner_kind}, Namespace={namespace} "
            f"Name={owner_name or pod_name} UID={uid} Operation={operation} "
            f"User={user}",
            extra={
                "uid": uid,
                "namespace": namespace,
                "pod_name": pod_name,
                "owner_kind": owner_kind,
                "owner_name": owner_name,
                "operation": operation,
                "user": user,
            },
        )

    def log_skipped(self, namespace: str, pod_name: str, reason: str) -> None:
        self.logger.info(
            f"Skipping mutation for {namespace}/{pod_name}: {reason}",
            extra={"namespace": namespace, "pod_name": pod_name},
        )

    def log_patch(self, namespace: str, pod_name: str, patch: str) -> None:
        self.logger.info(
            f"Mutating {namespace}/{pod_name}",
            extra={"namespace": namespace, "pod_name": pod_name, "patch": patch},
        )

    def log_failure(
        self, error: Exception, namespace: str = "", exc_info: bool = False
    ) -> None:
        """Log an admission request answered with a failure."""
        self.logger.error(
            f"Admission failed: {error}",
            extra={"namespace": namespace, "error_type": type(error).__name__},
            exc_info=exc_info,
        )
