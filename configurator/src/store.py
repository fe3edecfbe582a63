from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any


def meta_namespace_key(obj: Any) -> str:
    """Return the ``<namespace>/<name>`` cache key for a Kubernetes object.

    Cluster-scoped objects (no namespace) are keyed by name alone, matching
    the key format used by ``kubectl`` and client-go indexers.
    """
    metadata = getattr(obj, "metadata", None)
    name = getattr(metadata, "name", None)
    if not name:
        raise ValueError("object has no metadata.name; cannot compute cache key")
    namespace = getattr(metadata, "namespace", None)
    if namespace:
        return f"{namespace}/{name}"
    return name


@dataclass
class ReplaceResult:
    """Objects touched by :meth:`ThreadSafeStore.replace`, split by change type."""

    added: list[Any] = field(default_factory=list)
    updated: list[tuple[Any, Any]] = field(default_factory=list)
    deleted: list[Any] = field(default_factory=list)


class ThreadSafeStore:
    """In-memory mirror of Kubernetes objects keyed by ``meta_namespace_key``.

    Written by a single informer thread and read by any number of callers.
    All access goes through an internal re-entrant lock, so readers never
    need to coordinate with the writer.
    """

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}
        self._lock = threading.RLock()

    def add(self, obj: Any) -> Any | None:
        """Insert or overwrite *obj*; return the previous object for its key, if any."""
        key = meta_namespace_key(obj)
        with self._lock:
            previous = self._items.get(key)
            self._items[key] = obj
        return previous

    update = add

    def delete(self, obj: Any) -> Any | None:
        key = meta_namespace_key(obj)
        with self._lock:
            return self._items.pop(key, None)

    def get_by_key(self, key: str) -> Any | None:
        with self._lock:
            return self._items.get(key)

    def list(self) -> list[Any]:
        with self._lock:
            return list(self._items.values())

    def list_keys(self) -> list[str]:
        with self._lock:
            return list(self._items.keys())

    def replace(self, items: Iterable[Any]) -> ReplaceResult:
        """Atomically swap the store contents for a fresh listing.

        Objects without a usable key are skipped. The returned
        :class:`ReplaceResult` lets the informer notify handlers about the
        difference between the old and new snapshot.
        """
        fresh: dict[str, Any] = {}
        for obj in items:
            try:
                fresh[meta_namespace_key(obj)] = obj
            except ValueError:
                continue

        result = ReplaceResult()
        with self._lock:
            previous = self._items
            self._items = fresh

        for key, obj in fresh.items():
            old = previous.get(key)
            if old is None:
                result.added.append(obj)
            else:
                result.updated.append((old, obj))
        for key, old in previous.items():
            if key not in fresh:
                result.deleted.append(old)
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
