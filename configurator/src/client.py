from __future__ import annotations

import logging
import threading
import time
from typing import Any

from kubernetes.client import CoreV1Api

from configurator.src.announcements import AnnouncementRelay, get_kubernetes_event_handlers
from configurator.src.filters import make_namespace_filter
from configurator.src.informer import ConfigMapInformer, wait_for_cache_sync
from configurator.src.mesh_config import MeshConfig, MeshConfigDecodeError, decode_mesh_config
from configurator.src.metrics import METRICS
from configurator.src.signals import ReadinessSignal

INFORMER_NAME = "ConfigMap"
PROVIDER_NAME = "OSMConfigMap"


class Configurator:
    """Read-only mirror of the mesh ConfigMap.

    A background coordinator thread runs the ConfigMap informer, waits for
    its initial sync, and closes :attr:`cache_synced` exactly once. Change
    notifications for ConfigMaps in ``osm_namespace`` are relayed on
    :attr:`announcements`. :meth:`get_config` may be called at any time and
    from any thread; it never raises and falls back to the default
    :class:`MeshConfig` whenever the ConfigMap is missing or unusable.

    If the informer never syncs before *stop* is set, :attr:`cache_synced`
    is never closed. Waiters should use
    :meth:`ReadinessSignal.wait_or_stop` rather than an unbounded wait.
    """

    def __init__(
        self,
        informer: ConfigMapInformer,
        stop: threading.Event,
        osm_namespace: str,
        config_map_name: str,
        payload_key: str | None = None,
        announcements: AnnouncementRelay | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.informer = informer
        self.cache = informer.get_store()
        self.stop_event = stop
        self.osm_namespace = osm_namespace
        self.config_map_name = config_map_name
        self.payload_key = payload_key
        self.logger = logger or logging.getLogger(__name__)
        self.announcements = announcements or AnnouncementRelay(logger=self.logger)
        self.cache_synced = ReadinessSignal()

        # Only the watched namespace is relayed; the informer itself may see more.
        self.should_observe = make_namespace_filter(osm_namespace)
        informer.add_event_handler(
            get_kubernetes_event_handlers(
                INFORMER_NAME,
                PROVIDER_NAME,
                self.announcements,
                self.should_observe,
                logger=self.logger,
            )
        )
        self._thread: threading.Thread | None = None
        self._informer_thread: threading.Thread | None = None

    def start(self) -> Configurator:
        """Start the coordinator thread and return immediately."""
        if self._thread is not None:
            return self
        self._thread = threading.Thread(
            target=self._run,
            name="osm-configmap-coordinator",
            daemon=True,
        )
        self._thread.start()
        return self

    def _run(self) -> None:
        self._informer_thread = threading.Thread(
            target=self.informer.run,
            args=(self.stop_event,),
            name="osm-configmap-informer",
            daemon=True,
        )
        self._informer_thread.start()
        self.logger.info(
            "Started OSM ConfigMap informer - watching for %s", self.get_config_map_cache_key()
        )
        self.logger.info("[ConfigMap Client] Waiting for ConfigMap informer's cache to sync")
        if not wait_for_cache_sync(self.stop_event, self.informer.has_synced):
            self.logger.error("Failed initial cache sync for ConfigMap informer")
            self.informer.request_stop()
            self._informer_thread.join()
            return

        if self.cache_synced.close():
            METRICS.cache_synced.set(1)
            self.logger.info("[ConfigMap Client] Cache sync for ConfigMap informer finished")

        self.stop_event.wait()
        self.informer.request_stop()
        # An open watch only notices the stop at its next event or server timeout.
        self._informer_thread.join()

    def stop(self) -> None:
        self.stop_event.set()
        self.informer.request_stop()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the coordinator and informer threads; return True once both have finished."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in (self._thread, self._informer_thread):
            if thread is None:
                continue
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(timeout=remaining)
            if thread.is_alive():
                return False
        return True

    def get_osm_namespace(self) -> str:
        return self.osm_namespace

    def get_config_map_cache_key(self) -> str:
        return f"{self.osm_namespace}/{self.config_map_name}"

    def get_announcements(self) -> AnnouncementRelay:
        return self.announcements

    def _degraded(self, reason: str, msg: str, *args: Any) -> MeshConfig:
        METRICS.config_read_errors_total.labels(reason=reason).inc()
        log = self.logger.debug if reason == "not_found" else self.logger.error
        log(msg, *args)
        return MeshConfig()

    def _select_payload(self, data: dict[str, Any]) -> tuple[str | None, str]:
        """Pick the data entry to decode; returns ``(payload, failure_reason)``."""
        if self.payload_key is not None:
            if self.payload_key not in data:
                return None, "missing_key"
            return data[self.payload_key], ""
        if len(data) > 1:
            return None, "ambiguous"
        return next(iter(data.values())), ""

    def get_config(self) -> MeshConfig:
        """Return the current mesh configuration, degrading to defaults on any failure."""
        key = self.get_config_map_cache_key()
        config_map = self.cache.get_by_key(key)
        if config_map is None:
            return self._degraded(
                "not_found", "ConfigMap %s not found in cache; using default config", key
            )

        data = getattr(config_map, "data", None)
        if not isinstance(data, dict) or not data:
            return self._degraded("empty", "The ConfigMap %s does not contain any Data", key)

        payload, reason = self._select_payload(data)
        if reason == "ambiguous":
            return self._degraded(
                "ambiguous",
                "The ConfigMap %s has %d data entries (%s); expected exactly one",
                key,
                len(data),
                ", ".join(sorted(data)),
            )
        if reason == "missing_key":
            return self._degraded(
                "missing_key",
                "The ConfigMap %s has no data entry %r",
                key,
                self.payload_key,
            )

        try:
            return decode_mesh_config("" if payload is None else str(payload))
        except MeshConfigDecodeError as exc:
            return self._degraded(
                "decode",
                "Error decoding ConfigMap %s with content %r: %s",
                key,
                payload,
                exc,
            )

    def is_permissive_traffic_policy_mode(self) -> bool:
        return self.get_config().permissive_traffic_policy_mode


def new_configurator(
    core_api: CoreV1Api,
    stop: threading.Event,
    osm_namespace: str,
    config_map_name: str,
    *,
    payload_key: str | None = None,
    announcement_buffer_size: int = 128,
    watch_timeout_seconds: int = 30,
    resync_seconds: int = 300,
    logger: logging.Logger | None = None,
) -> Configurator:
    """Create a :class:`Configurator` watching ``osm_namespace/config_map_name`` and start it.

    The informer watches ConfigMaps cluster-wide; the namespace filter keeps
    announcements scoped to ``osm_namespace`` and the cache key keeps
    :meth:`Configurator.get_config` scoped to the one watched object.
    """
    informer = ConfigMapInformer(
        core_api=core_api,
        namespace=None,
        watch_timeout_seconds=watch_timeout_seconds,
        resync_seconds=resync_seconds,
        logger=logger,
        name=INFORMER_NAME,
    )
    configurator = Configurator(
        informer=informer,
        stop=stop,
        osm_namespace=osm_namespace,
        config_map_name=config_map_name,
        payload_key=payload_key,
        announcements=AnnouncementRelay(maxsize=announcement_buffer_size, logger=logger),
        logger=logger,
    )
    return configurator.start()
