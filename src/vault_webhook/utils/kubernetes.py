"""
Kubernetes utilities for the vault webhook.

This module provides helper functions for interacting with the Kubernetes
API:
- Kubernetes client management and configuration
- List and watch of DatabaseCredentialBinding resources cluster-wide
"""

import logging
from collections.abc import Iterator
from typing import Any

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from vault_webhook.constants import BINDING_GROUP, BINDING_PLURAL

logger = logging.getLogger(__name__)

HTTP_GONE = 410


class ResourceExpiredError(Exception):
    """The watch's resourceVersion is too old; a fresh list is required."""


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    Tries in-cluster configuration first (when running in a pod) and falls
    back to the local kubeconfig for development.

    Returns:
        Configured Kubernetes API client
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


class BindingListWatch:
    """
    List and watch DatabaseCredentialBinding objects across all namespaces.

    Objects are returned as the plain dictionaries the custom objects API
    produces; decoding is left to the cache.
    """

    def __init__(
        self,
        api_client: client.ApiClient,
        version: str,
        group: str = BINDING_GROUP,
        plural: str = BINDING_PLURAL,
    ):
        self.group = group
        self.version = version
        self.plural = plural
        self._api = client.CustomObjectsApi(api_client)
        self._watch: watch.Watch | None = None

    def list(self) -> tuple[list[dict[str, Any]], str | None]:
        """
        List every binding in the cluster.

        Returns:
            The objects and the list's resourceVersion
        """
        result = self._api.list_cluster_custom_object(
            group=self.group, version=self.version, plural=self.plural
        )
        resource_version = result.get("metadata", {}).get("resourceVersion")
        return result.get("items", []), resource_version

    def watch(
        self, resource_version: str | None, timeout_seconds: int
    ) -> Iterator[dict[str, Any]]:
        """
        Stream change events after ``resource_version``.

        The stream ends when the server-side timeout expires.

        Yields:
            Raw events with ``type`` and ``object`` keys

        Raises:
            ResourceExpiredError: If ``resource_version`` is no longer available
        """
        self._watch = watch.Watch()
        try:
            for event in self._watch.stream(
                self._api.list_cluster_custom_object,
                group=self.group,
                version=self.version,
                plural=self.plural,
                resource_version=resource_version,
                timeout_seconds=timeout_seconds,
                allow_watch_bookmarks=True,
            ):
                if event.get("type") == "ERROR":
                    status = event.get("raw_object") or event.get("object") or {}
                    if status.get("code") == HTTP_GONE:
                        raise ResourceExpiredError(status.get("message", "expired"))
                    raise ApiException(
                        status=status.get("code"), reason=status.get("message")
                    )
                yield event
        except ApiException as e:
            if e.status == HTTP_GONE:
                raise ResourceExpiredError(str(e.reason)) from e
            raise
        finally:
            self._watch.stop()

    def stop(self) -> None:
        """Stop the active watch stream, if any."""
        if self._watch is not None:
            self._watch.stop()
