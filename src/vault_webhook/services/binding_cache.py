"""
Informer-backed cache of DatabaseCredentialBinding resources.

The cache mirrors every binding in the cluster. A background thread lists
all bindings, then applies the watch stream to a table keyed by
(namespace, name). Writers replace the table wholesale (copy-on-write), so
``snapshot()`` reads whatever table is current without taking a lock and
never waits on the watch thread.

Filtering is not done here; the matcher decides which bindings apply.
"""

import asyncio
import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Protocol, TypeAlias

from pydantic import ValidationError

from vault_webhook.errors import CacheSyncError, DecodeError, EnumerationError
from vault_webhook.models.binding import DatabaseCredentialBinding
from vault_webhook.observability.metrics import WebhookMetrics
from vault_webhook.utils.kubernetes import ResourceExpiredError

logger = logging.getLogger(__name__)

BindingKey: TypeAlias = tuple[str, str]
BindingSnapshot: TypeAlias = tuple[DatabaseCredentialBinding, ...]


class ListWatcher(Protocol):
    """List and watch semantics supplied by the Kubernetes client."""

    def list(self) -> tuple[list[dict[str, Any]], str | None]: ...

    def watch(
        self, resource_version: str | None, timeout_seconds: int
    ) -> Iterable[dict[str, Any]]: ...

    def stop(self) -> None: ...


class EventType(StrEnum):
    """Kind of change delivered by the watch stream."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    """A decoded binding change."""

    type: EventType
    binding: DatabaseCredentialBinding

    @classmethod
    def decode(cls, raw: Mapping[str, Any]) -> "WatchEvent":
        """
        Decode a raw watch event.

        Raises:
            DecodeError: If the event type or object is not understood
        """
        try:
            event_type = EventType(raw.get("type"))
        except ValueError as e:
            raise DecodeError(f"unknown watch event type: {raw.get('type')!r}") from e
        try:
            binding = DatabaseCredentialBinding.model_validate(raw.get("object"))
        except ValidationError as e:
            raise DecodeError(f"could not decode binding: {e}", cause=e) from e
        return cls(type=event_type, binding=binding)


class BindingCache:
    """Eventually consistent in-memory mirror of all bindings."""

    def __init__(
        self,
        list_watch: ListWatcher,
        metrics: WebhookMetrics | None = None,
        watch_timeout_seconds: int = 300,
        retry_delay_seconds: float = 5.0,
    ):
        """
        Initialize the cache.

        Args:
            list_watch: Source of the initial list and change events
            metrics: Metrics to report cache size and events into
            watch_timeout_seconds: Server-side timeout of one watch request
            retry_delay_seconds: Pause before retrying a failed watch
        """
        self._list_watch = list_watch
        self._metrics = metrics
        self._watch_timeout_seconds = watch_timeout_seconds
        self._retry_delay_seconds = retry_delay_seconds

        self._items: Mapping[BindingKey, object] = MappingProxyType({})
        self._write_lock = threading.Lock()
        self._resource_version: str | None = None
        self._synced = threading.Event()
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

        if metrics is not None:
            metrics.track_cache_size(self.__len__)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def has_synced(self) -> bool:
        """Whether the initial list has been applied."""
        return self._synced.is_set()

    async def start(self) -> None:
        """
        Start the background sync and wait for the initial list.

        No timeout is applied here; callers wrap this in ``asyncio.wait_for``.

        Raises:
            CacheSyncError: If the initial list fails
        """
        loop = asyncio.get_running_loop()
        initial_sync: asyncio.Future[None] = loop.create_future()

        def resolve(error: Exception | None) -> None:
            if initial_sync.done():
                return
            if error is None:
                initial_sync.set_result(None)
            else:
                initial_sync.set_exception(error)

        def run() -> None:
            try:
                self._list()
            except Exception as e:
                loop.call_soon_threadsafe(resolve, e)
                return
            loop.call_soon_threadsafe(resolve, None)
            self._run_watch_loop()

        self._stopping.clear()
        self._thread = threading.Thread(target=run, name="binding-cache", daemon=True)
        self._thread.start()

        try:
            await initial_sync
        except Exception as e:
            raise CacheSyncError(f"initial binding list failed: {e}", cause=e) from e
        logger.info(f"Binding cache synced with {len(self)} bindings")

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the watch and wait for the background thread to exit."""
        self._stopping.set()
        self._list_watch.stop()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def snapshot(self) -> BindingSnapshot:
        """
        Return the current bindings as an independent sequence.

        Raises:
            EnumerationError: If the store holds an entry that is not a binding
        """
        items = self._items
        bindings = []
        for entry in items.values():
            if not isinstance(entry, DatabaseCredentialBinding):
                raise EnumerationError(entry)
            bindings.append(entry)
        return tuple(bindings)

    def apply(self, event: WatchEvent) -> None:
        """Apply one change; upserts and removals are idempotent."""
        key = event.binding.key
        with self._write_lock:
            items = dict(self._items)
            match event.type:
                case EventType.ADDED | EventType.MODIFIED:
                    items[key] = event.binding
                case EventType.DELETED:
                    items.pop(key, None)
            self._items = MappingProxyType(items)

        logger.debug(
            f"Applied {event.type} for binding {key[0]}/{key[1]}",
            extra={
                "event_type": str(event.type),
                "binding": f"{key[0]}/{key[1]}",
                "cache_size": len(self),
            },
        )
        if self._metrics is not None:
            self._metrics.record_binding_event(str(event.type))

    def replace(self, objects: Iterable[Mapping[str, Any]]) -> None:
        """Replace the whole table with a fresh listing."""
        items: dict[BindingKey, object] = {}
        for obj in objects:
            try:
                binding = DatabaseCredentialBinding.model_validate(obj)
            except ValidationError as e:
                logger.warning(f"Skipping binding that could not be decoded: {e}")
                continue
            items[binding.key] = binding
        with self._write_lock:
            self._items = MappingProxyType(items)

    def _list(self) -> None:
        objects, resource_version = self._list_watch.list()
        self.replace(objects)
        self._resource_version = resource_version
        self._synced.set()
        logger.debug(
            f"Listed {len(self)} bindings at resourceVersion {resource_version}"
        )

    def _run_watch_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                if self._resource_version is None:
                    self._list()
                self._watch_once()
            except ResourceExpiredError as e:
                logger.info(f"Binding watch expired ({e}), relisting")
                self._resource_version = None
            except Exception as e:
                if self._stopping.is_set():
                    break
                logger.error(f"Binding watch failed: {e}", exc_info=True)
                self._stopping.wait(self._retry_delay_seconds)
        logger.debug("Binding cache watch loop stopped")

    def _watch_once(self) -> None:
        stream = self._list_watch.watch(
            self._resource_version, self._watch_timeout_seconds
        )
        for raw in stream:
            if self._stopping.is_set():
                return
            self._handle_raw_event(raw)

    def _handle_raw_event(self, raw: Mapping[str, Any]) -> None:
        obj = raw.get("object") or {}
        resource_version = obj.get("metadata", {}).get("resourceVersion")

        if raw.get("type") != "BOOKMARK":
            try:
                event = WatchEvent.decode(raw)
            except DecodeError as e:
                logger.warning(f"Skipping binding event: {e}")
            else:
                self.apply(event)

        if resource_version:
            self._resource_version = resource_version
