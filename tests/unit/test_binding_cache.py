"""
Unit tests for the binding cache.

The watch thread is exercised with an in-memory list/watch source; event
application is tested directly through ``apply``.
"""

import asyncio
import threading
import time

import pytest

from tests.fixtures.bindings import make_binding
from tests.utils.helpers import FakeListWatch
from vault_webhook.errors import CacheSyncError, DecodeError, EnumerationError
from vault_webhook.models.binding import DatabaseCredentialBinding
from vault_webhook.services.binding_cache import BindingCache, EventType, WatchEvent
from vault_webhook.utils.kubernetes import ResourceExpiredError


def event(event_type: str, **binding_kwargs) -> WatchEvent:
    return WatchEvent.decode({"type": event_type, "object": make_binding(**binding_kwargs)})


def cache_size(metrics) -> float | None:
    return metrics.registry.get_sample_value("database_credential_binding_cache_size")


def wait_until(condition, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


class TestWatchEventDecode:
    """Tests for decoding raw watch events."""

    def test_decodes_added_event(self):
        decoded = event("ADDED", name="a", namespace="ns1")

        assert decoded.type is EventType.ADDED
        assert decoded.binding.key == ("ns1", "a")
        assert decoded.binding.spec.database == "foo"

    def test_unknown_type_raises(self):
        with pytest.raises(DecodeError, match="unknown watch event type"):
            WatchEvent.decode({"type": "SOMETHING", "object": make_binding()})

    def test_malformed_object_raises(self):
        with pytest.raises(DecodeError, match="could not decode binding"):
            WatchEvent.decode({"type": "ADDED", "object": {"spec": "not-a-mapping"}})


class TestApply:
    """Tests for applying change events to the store."""

    def test_add_then_modify_keeps_one_entry(self):
        cache = BindingCache(FakeListWatch())

        cache.apply(event("ADDED", name="a", role="bar"))
        cache.apply(event("MODIFIED", name="a", role="baz"))

        assert len(cache) == 1
        assert cache.snapshot()[0].spec.role == "baz"

    def test_delete_removes_entry(self):
        cache = BindingCache(FakeListWatch())
        cache.apply(event("ADDED", name="a"))

        cache.apply(event("DELETED", name="a"))

        assert len(cache) == 0
        assert cache.snapshot() == ()

    def test_same_name_in_different_namespaces_are_distinct(self):
        cache = BindingCache(FakeListWatch())

        cache.apply(event("ADDED", name="a", namespace="ns1"))
        cache.apply(event("ADDED", name="a", namespace="ns2"))

        assert len(cache) == 2

    def test_delete_before_add_never_goes_negative(self, metrics):
        cache = BindingCache(FakeListWatch(), metrics=metrics)

        cache.apply(event("DELETED", name="a"))
        assert len(cache) == 0
        assert cache_size(metrics) == 0

        cache.apply(event("ADDED", name="a"))
        cache.apply(event("DELETED", name="a"))
        cache.apply(event("DELETED", name="a"))
        assert len(cache) == 0
        assert cache_size(metrics) == 0

    def test_cache_size_metric_tracks_store(self, metrics):
        cache = BindingCache(FakeListWatch(), metrics=metrics)

        cache.apply(event("ADDED", name="a"))
        cache.apply(event("ADDED", name="b"))
        cache.apply(event("MODIFIED", name="b"))
        assert cache_size(metrics) == 2

        cache.apply(event("DELETED", name="a"))
        assert cache_size(metrics) == 1

    def test_events_are_counted_by_type(self, metrics):
        cache = BindingCache(FakeListWatch(), metrics=metrics)

        cache.apply(event("ADDED", name="a"))
        cache.apply(event("DELETED", name="a"))

        sample = metrics.registry.get_sample_value
        assert sample("vault_webhook_binding_events_total", {"type": "ADDED"}) == 1
        assert sample("vault_webhook_binding_events_total", {"type": "DELETED"}) == 1


class TestSnapshot:
    """Tests for reading the store."""

    def test_snapshot_is_independent_of_later_writes(self):
        cache = BindingCache(FakeListWatch())
        cache.apply(event("ADDED", name="a"))

        before = cache.snapshot()
        cache.apply(event("ADDED", name="b"))

        assert len(before) == 1
        assert len(cache.snapshot()) == 2

    def test_snapshot_preserves_insertion_order(self):
        cache = BindingCache(FakeListWatch())
        for name in ("c", "a", "b"):
            cache.apply(event("ADDED", name=name))

        assert [binding.name for binding in cache.snapshot()] == ["c", "a", "b"]

    def test_non_binding_entry_raises_enumeration_error(self):
        cache = BindingCache(FakeListWatch())
        cache.replace([make_binding(name="a")])
        cache._items = {**cache._items, ("ns1", "junk"): {"kind": "ConfigMap"}}

        with pytest.raises(EnumerationError, match="unexpected object"):
            cache.snapshot()

    def test_replace_skips_undecodable_objects(self):
        cache = BindingCache(FakeListWatch())

        cache.replace([make_binding(name="a"), {"metadata": "broken"}])

        assert [binding.name for binding in cache.snapshot()] == ["a"]
        assert all(
            isinstance(binding, DatabaseCredentialBinding)
            for binding in cache.snapshot()
        )


class TestRawEvents:
    """Tests for handling events as delivered by the watch stream."""

    def test_bookmark_only_advances_resource_version(self):
        cache = BindingCache(FakeListWatch())

        cache._handle_raw_event(
            {
                "type": "BOOKMARK",
                "object": {"metadata": {"resourceVersion": "42"}},
            }
        )

        assert len(cache) == 0
        assert cache._resource_version == "42"

    def test_undecodable_event_is_skipped(self):
        cache = BindingCache(FakeListWatch())

        cache._handle_raw_event({"type": "ADDED", "object": {"spec": []}})

        assert len(cache) == 0

    def test_event_resource_version_is_tracked(self):
        cache = BindingCache(FakeListWatch())

        cache._handle_raw_event(
            {"type": "ADDED", "object": make_binding(name="a", resource_version="9")}
        )

        assert len(cache) == 1
        assert cache._resource_version == "9"


class TestSync:
    """Tests for the background list and watch."""

    @pytest.mark.asyncio
    async def test_start_waits_for_initial_list(self):
        list_watch = FakeListWatch(
            items=[make_binding(name="a"), make_binding(name="b")],
            resource_version="10",
        )
        cache = BindingCache(list_watch)

        try:
            await asyncio.wait_for(cache.start(), timeout=5)
            assert cache.has_synced
            assert len(cache) == 2
        finally:
            cache.stop()

    @pytest.mark.asyncio
    async def test_watch_events_reach_the_store(self):
        list_watch = FakeListWatch(
            items=[make_binding(name="a")],
            resource_version="10",
            events=[
                {"type": "ADDED", "object": make_binding(name="b", resource_version="11")},
                {"type": "DELETED", "object": make_binding(name="a", resource_version="12")},
            ],
        )
        cache = BindingCache(list_watch)

        try:
            await asyncio.wait_for(cache.start(), timeout=5)
            assert await asyncio.to_thread(
                wait_until, lambda: [b.name for b in cache.snapshot()] == ["b"]
            )
            assert list_watch.watch_calls[0] == "10"
        finally:
            cache.stop()

    @pytest.mark.asyncio
    async def test_initial_list_failure_raises_cache_sync_error(self):
        cache = BindingCache(FakeListWatch(list_error=RuntimeError("forbidden")))

        with pytest.raises(CacheSyncError, match="forbidden"):
            await asyncio.wait_for(cache.start(), timeout=5)
        assert not cache.has_synced
        cache.stop()

    @pytest.mark.asyncio
    async def test_expired_watch_relists(self):
        list_watch = FakeListWatch(items=[make_binding(name="a")], resource_version="10")
        expired = threading.Event()
        original_watch = list_watch.watch

        def watch_once_then_expire(resource_version, timeout_seconds):
            if not expired.is_set():
                expired.set()
                raise ResourceExpiredError("too old resource version")
            yield from original_watch(resource_version, timeout_seconds)

        list_watch.watch = watch_once_then_expire
        cache = BindingCache(list_watch, retry_delay_seconds=0.01)

        try:
            await asyncio.wait_for(cache.start(), timeout=5)
            assert await asyncio.to_thread(wait_until, lambda: list_watch.list_calls >= 2)
        finally:
            cache.stop()

    def test_stop_without_start_is_safe(self):
        list_watch = FakeListWatch()
        cache = BindingCache(list_watch)

        cache.stop()

        assert list_watch.stopped.is_set()
