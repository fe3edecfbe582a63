from __future__ import annotations

import logging
import math
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kubernetes import watch
from kubernetes.client import ApiException, CoreV1Api

from configurator.src.metrics import METRICS
from configurator.src.store import ThreadSafeStore


def _noop(*_: Any) -> None:
    return None


@dataclass(frozen=True)
class ResourceEventHandlers:
    """Callbacks invoked by the informer after the store has been updated."""

    on_add: Callable[[Any], None] = _noop
    on_update: Callable[[Any, Any], None] = _noop
    on_delete: Callable[[Any], None] = _noop


def wait_for_cache_sync(
    stop: threading.Event,
    *has_synced: Callable[[], bool],
    poll_interval: float = 0.1,
) -> bool:
    """Poll until every predicate reports a completed initial sync.

    Returns False as soon as *stop* is set, so a caller can tell a failed
    startup apart from a successful one.
    """
    while not stop.is_set():
        if all(predicate() for predicate in has_synced):
            return True
        stop.wait(timeout=poll_interval)
    return False


class ConfigMapInformer:
    """List-then-watch ConfigMaps into a :class:`ThreadSafeStore`.

    The informer performs a full listing to seed the store, flips
    :meth:`has_synced`, and then streams incremental changes from the
    listing's ``resourceVersion``. Every change is applied to the store
    before registered handlers are notified, so a handler reading the store
    always sees the state that triggered it.

    When ``namespace`` is ``None`` the informer watches ConfigMaps across
    all namespaces and leaves scoping to the registered handlers.

    With a positive ``resync_seconds`` every cached object is replayed to
    the handlers as an update (old and new are the same object) once per
    period, so consumers can periodically recompute derived state.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        namespace: str | None = None,
        watch_timeout_seconds: int = 30,
        resync_seconds: int = 0,
        store: ThreadSafeStore | None = None,
        logger: logging.Logger | None = None,
        name: str = "ConfigMap",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.core_api = core_api
        self.namespace = namespace
        self.watch_timeout_seconds = watch_timeout_seconds
        self.resync_seconds = resync_seconds
        self.clock = clock
        self.store = store if store is not None else ThreadSafeStore()
        self.logger = logger or logging.getLogger(__name__)
        self.name = name

        self._handlers: list[ResourceEventHandlers] = []
        self._handlers_lock = threading.Lock()
        self._synced = threading.Event()
        self._next_resync: float | None = None
        self._external_stop = threading.Event()
        self._active_watcher: watch.Watch | None = None
        self._watcher_lock = threading.Lock()

    def add_event_handler(self, handlers: ResourceEventHandlers) -> None:
        with self._handlers_lock:
            self._handlers.append(handlers)

    def get_store(self) -> ThreadSafeStore:
        return self.store

    def has_synced(self) -> bool:
        """Return True once the initial listing has been fully applied to the store."""
        return self._synced.is_set()

    def request_stop(self) -> None:
        """Request a cooperative stop and immediately interrupt any open watch stream."""
        self._external_stop.set()
        with self._watcher_lock:
            active_watcher = self._active_watcher
        if active_watcher is not None:
            active_watcher.stop()

    def _should_stop(self, stop_event: threading.Event) -> bool:
        return stop_event.is_set() or self._external_stop.is_set()

    def _list_func(self) -> Callable[..., Any]:
        if self.namespace is None:
            return self.core_api.list_config_map_for_all_namespaces
        return self.core_api.list_namespaced_config_map

    def _list_kwargs(self) -> dict[str, Any]:
        if self.namespace is None:
            return {}
        return {"namespace": self.namespace}

    def _snapshot_handlers(self) -> list[ResourceEventHandlers]:
        with self._handlers_lock:
            return list(self._handlers)

    def _dispatch(self, kind: str, *objs: Any) -> None:
        METRICS.events_total.labels(informer=self.name, kind=kind).inc()
        for handlers in self._snapshot_handlers():
            callback = {
                "add": handlers.on_add,
                "update": handlers.on_update,
                "delete": handlers.on_delete,
            }[kind]
            try:
                callback(*objs)
            except Exception:
                self.logger.exception("%s informer %s handler failed", self.name, kind)

    def _relist(self) -> str | None:
        """List every ConfigMap, replace the store, and notify handlers of the diff."""
        listing = self._list_func()(**self._list_kwargs())
        resource_version = getattr(getattr(listing, "metadata", None), "resource_version", None)
        items = getattr(listing, "items", None) or []
        result = self.store.replace(items)
        for obj in result.added:
            self._dispatch("add", obj)
        for old, new in result.updated:
            self._dispatch("update", old, new)
        for obj in result.deleted:
            self._dispatch("delete", obj)
        return resource_version

    def _resync_if_due(self, now_monotonic: float) -> None:
        """Replay every cached object as an update once the resync period has elapsed."""
        if self._next_resync is None or now_monotonic < self._next_resync:
            return
        objs = self.store.list()
        self.logger.debug("%s informer resyncing %d object(s)", self.name, len(objs))
        for obj in objs:
            self._dispatch("update", obj, obj)
        self._next_resync = now_monotonic + self.resync_seconds

    def _next_watch_timeout_seconds(self, now_monotonic: float) -> int:
        """Return the watch timeout, shortened so the loop wakes up for the next resync."""
        if self._next_resync is None:
            return self.watch_timeout_seconds
        remaining = max(1.0, self._next_resync - now_monotonic)
        return min(self.watch_timeout_seconds, max(1, math.ceil(remaining)))

    def _apply_event(self, event_type: str, obj: Any) -> None:
        try:
            if event_type in {"ADDED", "MODIFIED"}:
                previous = self.store.add(obj)
                if previous is None:
                    self._dispatch("add", obj)
                else:
                    self._dispatch("update", previous, obj)
            elif event_type == "DELETED":
                removed = self.store.delete(obj)
                self._dispatch("delete", removed if removed is not None else obj)
        except ValueError:
            self.logger.warning("Skipping %s event for %s object without a name", event_type, self.name)

    def run(self, stop: threading.Event) -> None:
        """List-then-watch until *stop* is set or :meth:`request_stop` is called.

        1. Retries the initial listing with jittered exponential backoff
           (1 s doubling to a 30 s cap).
        2. Opens a streaming watch from the listing's ``resourceVersion``.
        3. On ``410 Gone`` re-lists, replaces the store, and resumes.
        4. On other errors backs off with jitter before reconnecting.
        5. Replays the store to handlers every ``resync_seconds`` (when
           positive), shortening the watch timeout so resyncs fire on time.

        ``401`` / ``403`` responses indicate an RBAC or credentials problem
        and end the loop instead of retrying forever.
        """
        self._external_stop.clear()

        resource_version: str | None = None
        startup_backoff_seconds = 1
        while not self._should_stop(stop):
            try:
                resource_version = self._relist()
                self._synced.set()
                if self.resync_seconds > 0:
                    self._next_resync = self.clock() + self.resync_seconds
                self.logger.info(
                    "%s informer synced %d object(s); watching from resourceVersion %s",
                    self.name,
                    len(self.store),
                    resource_version,
                )
                break
            except ApiException as exc:
                if exc.status in {401, 403}:
                    self.logger.error(
                        "Kubernetes API access denied during initial %s list (status=%s). "
                        "Check RBAC and service account permissions.",
                        self.name,
                        exc.status,
                    )
                    METRICS.watch_errors_total.inc()
                    return
                self.logger.exception("Initial %s list failed", self.name)
                METRICS.watch_errors_total.inc()
            except Exception:
                self.logger.exception("Unexpected error during initial %s list", self.name)
                METRICS.watch_errors_total.inc()

            jittered = startup_backoff_seconds * (0.5 + random.random())  # noqa: S311
            stop.wait(timeout=jittered)
            startup_backoff_seconds = min(startup_backoff_seconds * 2, 30)

        backoff_seconds = 1
        watch_stream_count = 0

        while not self._should_stop(stop):
            self._resync_if_due(self.clock())
            watcher = watch.Watch()
            with self._watcher_lock:
                self._active_watcher = watcher
            try:
                if watch_stream_count > 0:
                    METRICS.watch_reconnects_total.inc()
                watch_stream_count += 1
                stream = watcher.stream(
                    self._list_func(),
                    resource_version=resource_version,
                    timeout_seconds=self._next_watch_timeout_seconds(self.clock()),
                    **self._list_kwargs(),
                )

                for event in stream:
                    if self._should_stop(stop):
                        break

                    obj = event.get("object")
                    if obj is None:
                        continue

                    metadata = getattr(obj, "metadata", None)
                    if metadata is not None and getattr(metadata, "resource_version", None):
                        resource_version = metadata.resource_version

                    event_type = str(event.get("type", ""))
                    if event_type == "BOOKMARK":
                        continue
                    self._apply_event(event_type, obj)
                    self._resync_if_due(self.clock())

                backoff_seconds = 1
                self._resync_if_due(self.clock())
            except ApiException as exc:
                # 410 Gone: etcd compacted past our resourceVersion, so the
                # only safe way forward is a fresh snapshot.
                if exc.status == 410:
                    self.logger.warning("%s watch resource version expired, re-listing", self.name)
                    try:
                        resource_version = self._relist()
                    except ApiException as relist_exc:
                        if relist_exc.status in {401, 403}:
                            self.logger.error(
                                "Kubernetes API access denied during 410 re-list (status=%s). "
                                "Check RBAC and service account permissions.",
                                relist_exc.status,
                            )
                            METRICS.watch_errors_total.inc()
                            return
                        self.logger.exception("Failed to re-list %s after 410", self.name)
                        METRICS.watch_errors_total.inc()
                        resource_version = None
                    continue

                if exc.status in {401, 403}:
                    self.logger.error(
                        "Kubernetes API watch denied (status=%s). "
                        "Check RBAC and service account permissions.",
                        exc.status,
                    )
                    METRICS.watch_errors_total.inc()
                    return

                self.logger.exception("Kubernetes API %s watch error", self.name)
                METRICS.watch_errors_total.inc()
                jittered = backoff_seconds * (0.5 + random.random())  # noqa: S311
                stop.wait(timeout=jittered)
                backoff_seconds = min(backoff_seconds * 2, 30)
            except Exception:
                self.logger.exception("Unexpected %s watch error", self.name)
                METRICS.watch_errors_total.inc()
                jittered = backoff_seconds * (0.5 + random.random())  # noqa: S311
                stop.wait(timeout=jittered)
                backoff_seconds = min(backoff_seconds * 2, 30)
            finally:
                watcher.stop()
                with self._watcher_lock:
                    if self._active_watcher is watcher:
                        self._active_watcher = None

        self.logger.info("%s informer stopped", self.name)
