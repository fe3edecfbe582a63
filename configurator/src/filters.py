from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class HasNamespace(Protocol):
    """Capability required of every watchable object: a ``namespace`` accessor."""

    @property
    def namespace(self) -> str | None: ...


@runtime_checkable
class HasObjectMeta(Protocol):
    """Kubernetes model objects (``V1ConfigMap`` and friends).

    They expose the namespace through their ``V1ObjectMeta``, which itself
    satisfies :class:`HasNamespace`.
    """

    @property
    def metadata(self) -> HasNamespace | None: ...


def namespace_of(obj: Any) -> str | None:
    """Return the namespace of *obj*, or ``None`` when it cannot be determined."""
    if isinstance(obj, HasNamespace):
        namespace = obj.namespace
    elif isinstance(obj, HasObjectMeta) and isinstance(obj.metadata, HasNamespace):
        namespace = obj.metadata.namespace
    else:
        return None
    if not isinstance(namespace, str):
        return None
    return namespace


def make_namespace_filter(namespace: str) -> Callable[[Any], bool]:
    """Build a predicate that accepts only objects living in *namespace*.

    Objects with no metadata or no namespace never match.
    """

    def should_observe(obj: Any) -> bool:
        return namespace_of(obj) == namespace

    return should_observe
