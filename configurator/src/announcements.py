from __future__ import annotations

import logging
import queue
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from configurator.src.informer import ResourceEventHandlers
from configurator.src.metrics import METRICS

LOGGER = logging.getLogger(__name__)


class AnnouncementKind(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class Announcement:
    """A change notification for an object that passed the namespace filter."""

    kind: AnnouncementKind
    obj: Any
    provider: str = ""


class AnnouncementRelay:
    """Bounded, non-blocking outbound channel of :class:`Announcement` objects.

    Producers never block. When the buffer is full the *incoming*
    announcement is dropped (drop-newest) and counted, so everything that is
    delivered stays in the order the watch observed it. Consumers that do
    not care about announcements may ignore the relay entirely.
    """

    def __init__(self, maxsize: int = 128, logger: logging.Logger | None = None) -> None:
        if maxsize < 1:
            raise ValueError(f"announcement buffer size must be >= 1, got: {maxsize}")
        self.maxsize = maxsize
        self.queue: queue.Queue[Announcement] = queue.Queue(maxsize=maxsize)
        self.logger = logger or LOGGER

    def publish(self, announcement: Announcement) -> bool:
        """Enqueue *announcement*; return False if it was dropped because the relay is full."""
        try:
            self.queue.put_nowait(announcement)
        except queue.Full:
            METRICS.announcements_dropped_total.inc()
            self.logger.warning(
                "Announcement relay full (%d); dropping %s announcement",
                self.maxsize,
                announcement.kind.value,
            )
            return False
        METRICS.announcements_published_total.inc()
        return True

    def get(self, timeout: float | None = None) -> Announcement | None:
        """Return the next announcement, or ``None`` if none arrived within *timeout*."""
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_nowait(self) -> Announcement | None:
        try:
            return self.queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> list[Announcement]:
        """Remove and return every buffered announcement in delivery order."""
        drained: list[Announcement] = []
        while True:
            announcement = self.get_nowait()
            if announcement is None:
                return drained
            drained.append(announcement)

    def qsize(self) -> int:
        return self.queue.qsize()


def get_kubernetes_event_handlers(
    informer_name: str,
    provider_name: str,
    relay: AnnouncementRelay,
    should_observe: Callable[[Any], bool],
    logger: logging.Logger | None = None,
) -> ResourceEventHandlers:
    """Build informer callbacks that relay observed changes as announcements.

    Objects rejected by *should_observe* are counted and otherwise ignored.
    Updates are filtered on the new version of the object. Diagnostics go to
    *logger*, falling back to the relay's logger.
    """
    log = logger or relay.logger

    def _relay(kind: AnnouncementKind, obj: Any) -> None:
        if not should_observe(obj):
            METRICS.events_filtered_total.labels(informer=informer_name).inc()
            return
        log.debug("[%s] %s %s event", provider_name, informer_name, kind.value)
        relay.publish(Announcement(kind=kind, obj=obj, provider=provider_name))

    def on_add(obj: Any) -> None:
        _relay(AnnouncementKind.ADDED, obj)

    def on_update(old: Any, new: Any) -> None:
        _relay(AnnouncementKind.UPDATED, new)

    def on_delete(obj: Any) -> None:
        _relay(AnnouncementKind.DELETED, obj)

    return ResourceEventHandlers(on_add=on_add, on_update=on_update, on_delete=on_delete)
