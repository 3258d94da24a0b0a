"""Unit tests for Kubernetes utility functions."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes import config
from kubernetes.client.rest import ApiException

from tests.fixtures.bindings import MINIMAL_BINDING
from vault_webhook.utils.kubernetes import (
    BindingListWatch,
    ResourceExpiredError,
    get_kubernetes_client,
)


@pytest.fixture
def custom_api():
    api = MagicMock()
    with patch("kubernetes.client.CustomObjectsApi", return_value=api):
        yield api


@pytest.fixture
def mock_watch():
    watcher = MagicMock()
    with patch("kubernetes.watch.Watch", return_value=watcher):
        yield watcher


class TestGetKubernetesClient:
    """Tests for loading cluster configuration."""

    @patch("kubernetes.config.load_kube_config")
    @patch("kubernetes.config.load_incluster_config")
    def test_prefers_in_cluster_config(self, mock_incluster, mock_kubeconfig):
        get_kubernetes_client()

        mock_incluster.assert_called_once()
        mock_kubeconfig.assert_not_called()

    @patch("kubernetes.config.load_kube_config")
    @patch(
        "kubernetes.config.load_incluster_config",
        side_effect=config.ConfigException("not in cluster"),
    )
    def test_falls_back_to_kubeconfig(self, mock_incluster, mock_kubeconfig):
        get_kubernetes_client()

        mock_kubeconfig.assert_called_once()

    @patch(
        "kubernetes.config.load_kube_config",
        side_effect=config.ConfigException("no kubeconfig"),
    )
    @patch(
        "kubernetes.config.load_incluster_config",
        side_effect=config.ConfigException("not in cluster"),
    )
    def test_raises_without_any_config(self, mock_incluster, mock_kubeconfig):
        with pytest.raises(config.ConfigException):
            get_kubernetes_client()


class TestBindingListWatch:
    """Tests for listing and watching bindings."""

    def test_list_returns_items_and_resource_version(self, custom_api):
        custom_api.list_cluster_custom_object.return_value = {
            "metadata": {"resourceVersion": "123"},
            "items": [MINIMAL_BINDING],
        }

        items, resource_version = BindingListWatch(MagicMock(), "v1").list()

        assert items == [MINIMAL_BINDING]
        assert resource_version == "123"
        custom_api.list_cluster_custom_object.assert_called_once_with(
            group="vaultwebhook.uswitch.com",
            version="v1",
            plural="databasecredentialbindings",
        )

    def test_watch_streams_from_resource_version(self, custom_api, mock_watch):
        events = [{"type": "ADDED", "object": MINIMAL_BINDING}]
        mock_watch.stream.return_value = iter(events)

        result = list(BindingListWatch(MagicMock(), "v1").watch("123", 60))

        assert result == events
        kwargs = mock_watch.stream.call_args.kwargs
        assert kwargs["resource_version"] == "123"
        assert kwargs["timeout_seconds"] == 60
        assert kwargs["allow_watch_bookmarks"] is True
        mock_watch.stop.assert_called()

    def test_gone_error_event_raises_resource_expired(self, custom_api, mock_watch):
        mock_watch.stream.return_value = iter(
            [
                {
                    "type": "ERROR",
                    "object": {"code": 410, "message": "too old resource version"},
                    "raw_object": {"code": 410, "message": "too old resource version"},
                }
            ]
        )

        with pytest.raises(ResourceExpiredError, match="too old"):
            list(BindingListWatch(MagicMock(), "v1").watch("1", 60))

    def test_gone_api_exception_raises_resource_expired(self, custom_api, mock_watch):
        mock_watch.stream.side_effect = ApiException(status=410, reason="Gone")

        with pytest.raises(ResourceExpiredError):
            list(BindingListWatch(MagicMock(), "v1").watch("1", 60))

    def test_other_errors_propagate(self, custom_api, mock_watch):
        mock_watch.stream.return_value = iter(
            [{"type": "ERROR", "object": {"code": 500, "message": "internal"}}]
        )

        with pytest.raises(ApiException):
            list(BindingListWatch(MagicMock(), "v1").watch("1", 60))

    def test_stop_stops_active_watch(self, custom_api, mock_watch):
        list_watch = BindingListWatch(MagicMock(), "v1")
        mock_watch.stream.return_value = iter([])
        list(list_watch.watch(None, 60))
        mock_watch.stop.reset_mock()

        list_watch.stop()

        mock_watch.stop.assert_called_once()
